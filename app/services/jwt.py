"""JWT Token Service."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import get_settings
from app.errors import TOKEN_EXPIRED, TOKEN_INVALID

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenError(Exception):
    """Raised when a token cannot be accepted. `code` is TOKEN_EXPIRED or TOKEN_INVALID."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime


class JWTService:
    """Handles JWT token creation and validation."""

    def __init__(self) -> None:
        settings = get_settings()
        self.secret_key = settings.JWT_SECRET_KEY
        self.refresh_secret_key = settings.JWT_REFRESH_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.audience = settings.JWT_AUDIENCE
        self.access_expire = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_expire = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def create_access_token(
        self, user_id: int, email: str, username: str, token_version: int, expires_in: timedelta | None = None
    ) -> str:
        """Create a short-lived access token scoped to the user's current token version."""
        expire = datetime.utcnow() + (expires_in if expires_in is not None else self.access_expire)
        payload = {
            "sub": str(user_id),
            "email": email,
            "username": username,
            "tokenVersion": token_version,
            "type": ACCESS_TOKEN_TYPE,
            "iss": self.issuer,
            "aud": self.audience,
            "exp": expire,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def create_refresh_token(self, user_id: int, token_version: int) -> str:
        """Create a long-lived refresh token, signed with its own secret."""
        expire = datetime.utcnow() + self.refresh_expire
        payload = {
            "sub": str(user_id),
            "tokenVersion": token_version,
            "type": REFRESH_TOKEN_TYPE,
            "iss": self.issuer,
            "aud": self.audience,
            "exp": expire,
        }
        return jwt.encode(payload, self.refresh_secret_key, algorithm=self.algorithm)

    def create_token_pair(self, user_id: int, email: str, username: str, token_version: int) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user_id, email, username, token_version),
            refresh_token=self.create_refresh_token(user_id, token_version),
            access_expires_at=datetime.utcnow() + self.access_expire,
        )

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """Decode an access token. Raises TokenError."""
        return self._verify(token, self.secret_key, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        """Decode a refresh token. Raises TokenError."""
        return self._verify(token, self.refresh_secret_key, REFRESH_TOKEN_TYPE)

    def _verify(self, token: str, key: str, token_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError as e:
            raise TokenError(TOKEN_EXPIRED, "Token has expired") from e
        except JWTError as e:
            raise TokenError(TOKEN_INVALID, "Invalid or malformed token") from e

        if payload.get("type") != token_type or "sub" not in payload or "tokenVersion" not in payload:
            raise TokenError(TOKEN_INVALID, "Invalid or malformed token")
        return payload


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get singleton JWT service instance."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
