"""Account management API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.errors import INVALID_CREDENTIALS, APIError, error_for_code
from app.models.user import User
from app.schemas.auth import ProfileResponse, UserResponse
from app.schemas.common import MessageResponse
from app.schemas.user import (
    AccountDeletionDetails,
    AccountDeletionResponse,
    ChangePasswordRequest,
    PasswordConfirmation,
    ProfileUpdateResponse,
    UpdateProfileRequest,
)
from app.services.account import get_account_service

router = APIRouter(prefix="/api/user", tags=["User"])


@router.get("/profile", response_model=ProfileResponse)
def get_user_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    """Get the signed-in user's profile."""
    return ProfileResponse(user=UserResponse.model_validate(user))


@router.put("/profile", response_model=ProfileUpdateResponse)
def update_profile(
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProfileUpdateResponse:
    """Change username and/or email."""
    result = get_account_service().update_profile(db, user, body.username, body.email)
    if not result.success:
        raise error_for_code(result.code, result.error)
    return ProfileUpdateResponse(message="Profile updated successfully", user=UserResponse.model_validate(result.user))


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Change password after re-entering the current one."""
    result = get_account_service().change_password(db, user, body.current_password, body.new_password)
    if not result.success:
        raise error_for_code(result.code, result.error)
    return MessageResponse(message="Password changed successfully")


@router.delete("/account", response_model=AccountDeletionResponse)
def delete_account(
    body: PasswordConfirmation,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AccountDeletionResponse:
    """Delete the account with all its transcriptions and audio files."""
    deletion = get_account_service().delete_account(db, user, body.password)
    if deletion is None:
        raise APIError(status_code=401, detail="Incorrect password", code=INVALID_CREDENTIALS)

    return AccountDeletionResponse(
        message="Account deleted successfully",
        details=AccountDeletionDetails(
            transcriptions_deleted=deletion.transcriptions_deleted,
            files_deleted=deletion.files_deleted,
            user_deleted=True,
        ),
    )
