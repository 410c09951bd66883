"""Pydantic schemas for account management endpoints."""

from pydantic import Field, field_validator, model_validator

from app.schemas.auth import EMAIL_PATTERN, USERNAME_PATTERN, UserResponse, check_password_strength
from app.schemas.common import CamelModel


class UpdateProfileRequest(CamelModel):
    username: str | None = Field(default=None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: str | None = Field(default=None, min_length=5, max_length=254, pattern=EMAIL_PATTERN)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        return value.lower() if value is not None else None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "UpdateProfileRequest":
        if self.username is None and self.email is None:
            raise ValueError("Provide a username or email to update")
        return self


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class PasswordConfirmation(CamelModel):
    password: str = Field(min_length=1)


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserResponse


class AccountDeletionDetails(CamelModel):
    transcriptions_deleted: int
    files_deleted: int
    user_deleted: bool


class AccountDeletionResponse(CamelModel):
    message: str
    details: AccountDeletionDetails
