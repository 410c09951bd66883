"""Shared FastAPI dependencies: authentication and service wiring."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from app.database import get_db, get_session_factory
from app.errors import TOKEN_INVALID, TOKEN_MISSING, APIError
from app.models.user import User
from app.services.auth import get_auth_service
from app.services.deepgram import TranscriptionProvider
from app.services.jwt import TokenError, get_jwt_service
from app.services.transcription import TranscriptionLifecycle


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Resolve the Bearer access token to a user.

    Missing token -> 401 TOKEN_MISSING, expired -> 401 TOKEN_EXPIRED, anything
    else wrong (signature, structure, stale token version) -> 403 TOKEN_INVALID.
    """
    token = _bearer_token(request)
    if not token:
        raise APIError(status_code=401, detail="Access token required", code=TOKEN_MISSING)

    try:
        payload = get_jwt_service().verify_access_token(token)
    except TokenError as e:
        status_code = 403 if e.code == TOKEN_INVALID else 401
        raise APIError(status_code=status_code, detail=e.message, code=e.code) from None

    user = get_auth_service().resolve_token_user(db, payload)
    if user is None:
        raise APIError(status_code=403, detail="Invalid or malformed token", code=TOKEN_INVALID)
    return user


def get_transcription_provider(request: Request) -> TranscriptionProvider:
    """The provider client created at startup."""
    return request.app.state.transcription_provider


def get_lifecycle(
    provider: TranscriptionProvider = Depends(get_transcription_provider),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> TranscriptionLifecycle:
    return TranscriptionLifecycle(provider, session_factory)
