"""Authentication service."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import bcrypt
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import ACCOUNT_DEACTIVATED, ACCOUNT_LOCKED, CONFLICT, INVALID_CREDENTIALS
from app.models.user import User

logger = logging.getLogger("vocalog")

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    settings = get_settings()
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))


@dataclass
class AuthResult:
    """Result of an authentication attempt."""

    success: bool
    error: str | None = None
    code: str | None = None
    user: User | None = None


class AuthService:
    """Handles user registration, login lockout and token epochs."""

    def register(self, db: Session, username: str, email: str, password: str) -> AuthResult:
        """Register a new user. Returns AuthResult with success/error."""
        email = email.lower().strip()
        username = username.strip()

        existing = db.query(User).filter(or_(User.email == email, User.username == username)).first()
        if existing:
            if existing.email == email:
                return AuthResult(success=False, error="Email already registered", code=CONFLICT)
            return AuthResult(success=False, error="Username already taken", code=CONFLICT)

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            is_active=True,
            failed_login_attempts=0,
            token_version=0,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration
            db.rollback()
            return AuthResult(success=False, error="Email or username already registered", code=CONFLICT)
        db.refresh(user)

        logger.info("Registered user %s (id=%s)", user.username, user.id)
        return AuthResult(success=True, user=user)

    def authenticate(self, db: Session, email: str, password: str) -> AuthResult:
        """Authenticate a user by email and password.

        Unknown emails and wrong passwords produce the same error so callers cannot
        check which addresses are registered. Consecutive failures lock the account.
        """
        user = db.query(User).filter(User.email == email.lower().strip()).first()
        if not user:
            return AuthResult(success=False, error="Invalid email or password", code=INVALID_CREDENTIALS)

        now = datetime.utcnow()
        if user.is_locked(now):
            return AuthResult(
                success=False,
                error="Account temporarily locked due to too many failed attempts",
                code=ACCOUNT_LOCKED,
            )

        if not user.is_active:
            return AuthResult(success=False, error="Account has been deactivated", code=ACCOUNT_DEACTIVATED)

        if not verify_password(password, user.password_hash):
            self._record_failed_login(db, user, now)
            return AuthResult(success=False, error="Invalid email or password", code=INVALID_CREDENTIALS)

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        db.commit()

        return AuthResult(success=True, user=user)

    def _record_failed_login(self, db: Session, user: User, now: datetime) -> None:
        settings = get_settings()
        if user.locked_until is not None and user.locked_until <= now:
            # Previous lock has run out, start counting again
            user.locked_until = None
            user.failed_login_attempts = 0

        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.locked_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
            logger.warning(
                "Locked account %s after %d failed logins (until %s)",
                user.id,
                user.failed_login_attempts,
                user.locked_until,
            )
        db.commit()

    def resolve_token_user(self, db: Session, payload: dict[str, Any]) -> User | None:
        """Return the active user a verified token belongs to, or None if its epoch is stale."""
        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            return None

        user = db.get(User, user_id)
        if user is None or not user.is_active:
            return None
        if payload.get("tokenVersion") != user.token_version:
            return None
        return user

    def logout_all_devices(self, db: Session, user: User) -> int:
        """Invalidate every token issued so far. Returns the new token version."""
        user.token_version = (user.token_version or 0) + 1
        db.commit()
        logger.info("Token version for user %s bumped to %d", user.id, user.token_version)
        return user.token_version


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
