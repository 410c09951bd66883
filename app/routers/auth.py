"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.errors import TOKEN_INVALID, APIError, error_for_code
from app.models.user import User
from app.rate_limit import limiter
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    ProfileResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from app.schemas.common import MessageResponse
from app.services.auth import get_auth_service
from app.services.jwt import TokenError, get_jwt_service

logger = logging.getLogger("vocalog")

router = APIRouter(prefix="/api", tags=["Authentication"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)) -> RegisterResponse:
    """Register a new user account. Does not log the user in."""
    auth_service = get_auth_service()
    result = auth_service.register(db, body.username, body.email, body.password)

    if not result.success:
        logger.info("Registration rejected: %s", result.error)
        raise error_for_code(result.code, result.error)

    return RegisterResponse(
        message="Registration successful! Please login to continue.",
        user=UserResponse.model_validate(result.user),
    )


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """Authenticate and receive an access token and a refresh token."""
    auth_service = get_auth_service()
    result = auth_service.authenticate(db, body.email, body.password)

    if not result.success:
        raise error_for_code(result.code, result.error)

    user = result.user
    tokens = get_jwt_service().create_token_pair(
        user_id=user.id,  # type: ignore[union-attr]
        email=user.email,  # type: ignore[union-attr]
        username=user.username,  # type: ignore[union-attr]
        token_version=user.token_version,  # type: ignore[union-attr]
    )
    logger.info("Login successful for user %s", user.id)  # type: ignore[union-attr]

    return LoginResponse(
        message="Login successful",
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expiration=tokens.access_expires_at,
        user=UserResponse.model_validate(user),
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    """Get the signed-in user's profile."""
    return ProfileResponse(user=UserResponse.model_validate(user))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(user: User = Depends(get_current_user)) -> MessageResponse:
    """Acknowledge logout. Tokens are stateless; the client discards them."""
    logger.info("Logout for user %s", user.id)
    return MessageResponse(message="Logout successful")


@router.post("/auth/logout-all", response_model=MessageResponse)
def logout_all_devices(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> MessageResponse:
    """Invalidate every token previously issued to this account."""
    get_auth_service().logout_all_devices(db, user)
    return MessageResponse(message="Logged out from all devices successfully")


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh_access_token(body: RefreshRequest, db: Session = Depends(get_db)) -> RefreshResponse:
    """Exchange a refresh token for a new access token."""
    jwt_service = get_jwt_service()
    try:
        payload = jwt_service.verify_refresh_token(body.refresh_token)
    except TokenError as e:
        raise error_for_code(e.code, e.message) from None

    user = get_auth_service().resolve_token_user(db, payload)
    if user is None:
        raise APIError(status_code=403, detail="Invalid or malformed token", code=TOKEN_INVALID)

    tokens = jwt_service.create_token_pair(user.id, user.email, user.username, user.token_version)
    return RefreshResponse(access_token=tokens.access_token, token_expiration=tokens.access_expires_at)
