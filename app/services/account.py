"""Account management: profile edits, password changes and account deletion."""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import CONFLICT, INVALID_CREDENTIALS, VALIDATION_FAILED
from app.models.transcription import Transcription
from app.models.user import User
from app.services.audio_ingest import cleanup_file, stored_file_path
from app.services.auth import AuthResult, hash_password, verify_password

logger = logging.getLogger("vocalog")


@dataclass
class AccountDeletion:
    """Outcome of deleting an account."""

    transcriptions_deleted: int
    files_deleted: int


class AccountService:
    """Handles changes a signed-in user makes to their own account."""

    def update_profile(self, db: Session, user: User, username: str | None, email: str | None) -> AuthResult:
        """Change username and/or email. Existing transcriptions keep the owner details they were created with."""
        if email is not None:
            email = email.lower().strip()
            taken = db.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                return AuthResult(success=False, error="Email already in use", code=CONFLICT)

        if username is not None:
            username = username.strip()
            taken = db.query(User).filter(User.username == username, User.id != user.id).first()
            if taken:
                return AuthResult(success=False, error="Username already taken", code=CONFLICT)

        if email is not None:
            user.email = email
        if username is not None:
            user.username = username
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return AuthResult(success=False, error="Email or username already in use", code=CONFLICT)
        db.refresh(user)
        return AuthResult(success=True, user=user)

    def change_password(self, db: Session, user: User, current_password: str, new_password: str) -> AuthResult:
        if not verify_password(current_password, user.password_hash):
            return AuthResult(success=False, error="Current password is incorrect", code=INVALID_CREDENTIALS)

        if verify_password(new_password, user.password_hash):
            return AuthResult(
                success=False,
                error="New password must be different from current password",
                code=VALIDATION_FAILED,
            )

        user.password_hash = hash_password(new_password)
        db.commit()
        logger.info("Password changed for user %s", user.id)
        return AuthResult(success=True, user=user)

    def delete_account(self, db: Session, user: User, password: str) -> AccountDeletion | None:
        """Delete the user, their transcriptions and stored audio. Returns None if the password is wrong."""
        if not verify_password(password, user.password_hash):
            return None

        user_id = user.id
        file_paths = [
            stored_file_path(user_id, stored_filename)
            for (stored_filename,) in db.query(Transcription.stored_filename).filter(Transcription.user_id == user_id)
        ]
        logger.info("Deleting account %s with %d transcriptions", user_id, len(file_paths))

        transcriptions_deleted = (
            db.query(Transcription).filter(Transcription.user_id == user_id).delete(synchronize_session=False)
        )
        db.delete(user)
        db.commit()

        # Files go only after the rows are committed; a file that cannot be removed is only logged
        files_deleted = sum(1 for path in file_paths if cleanup_file(path))

        logger.info(
            "Deleted account %s: %d transcriptions, %d files", user_id, transcriptions_deleted, files_deleted
        )
        return AccountDeletion(transcriptions_deleted=transcriptions_deleted, files_deleted=files_deleted)


_account_service: AccountService | None = None


def get_account_service() -> AccountService:
    """Get singleton account service instance."""
    global _account_service
    if _account_service is None:
        _account_service = AccountService()
    return _account_service
