"""Transcription record persistence, search, stats and export."""

import json
import math
import re
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.transcription import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUSES,
    Transcription,
)
from app.models.user import User
from app.services.deepgram import TranscriptionResult


class TranscriptionRecordService:
    """Handles transcription record CRUD, lifecycle writes and export."""

    def create_processing(
        self,
        db: Session,
        user: User,
        title: str,
        original_filename: str,
        stored_filename: str,
        mime_type: str,
        file_size: int,
        duration: float,
        source: str,
    ) -> Transcription:
        """Create the placeholder record that exists while the provider is working."""
        record = Transcription(
            user_id=user.id,
            username=user.username,
            email=user.email,
            title=title,
            original_filename=original_filename,
            stored_filename=stored_filename,
            mime_type=mime_type,
            file_size=file_size,
            duration=duration,
            transcription="",
            confidence=0.0,
            status=STATUS_PROCESSING,
            source=source,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def mark_completed(self, db: Session, transcription_id: int, result: TranscriptionResult) -> Transcription | None:
        """Terminal write for a successful provider call. Returns None if the record is gone."""
        record = db.get(Transcription, transcription_id)
        if record is None:
            return None
        record.transcription = result.transcript
        record.confidence = min(max(result.confidence, 0.0), 1.0)
        if result.duration > 0:
            record.duration = result.duration
        language = result.metadata.get("language")
        if language:
            record.language = language
        record.provider_metadata = result.metadata
        record.status = STATUS_COMPLETED
        db.commit()
        return record

    def mark_failed(self, db: Session, transcription_id: int) -> Transcription | None:
        """Terminal write for a failed provider call. Returns None if the record is gone."""
        record = db.get(Transcription, transcription_id)
        if record is None:
            return None
        record.transcription = ""
        record.confidence = 0.0
        record.provider_metadata = None
        record.status = STATUS_FAILED
        db.commit()
        return record

    def get_user_transcriptions(
        self,
        db: Session,
        user_id: int,
        search: str | None = None,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Transcription], int]:
        """Get transcriptions for a user, newest first. Returns (items, total_count)."""
        query = db.query(Transcription).filter(Transcription.user_id == user_id)

        if search:
            query = query.filter(Transcription.title.ilike(f"%{search}%"))

        if status and status != "all":
            query = query.filter(Transcription.status == status)

        total = query.count()
        items = (
            query.order_by(Transcription.created_at.desc(), Transcription.id.desc()).offset(offset).limit(limit).all()
        )
        return items, total

    def get_transcription(self, db: Session, transcription_id: int, user_id: int) -> Transcription | None:
        """Get a single transcription by ID, scoped to user."""
        return (
            db.query(Transcription)
            .filter(Transcription.id == transcription_id, Transcription.user_id == user_id)
            .first()
        )

    def update_title(self, db: Session, record: Transcription, title: str) -> Transcription:
        record.title = title
        db.commit()
        db.refresh(record)
        return record

    def delete_transcription(self, db: Session, record: Transcription) -> None:
        db.delete(record)
        db.commit()

    def get_user_stats(self, db: Session, user_id: int) -> dict[str, Any]:
        """Dashboard numbers for a user."""
        base = db.query(Transcription).filter(Transcription.user_id == user_id)
        total = base.count()
        completed = base.filter(Transcription.status == STATUS_COMPLETED).count()
        total_seconds = (
            db.query(func.sum(Transcription.duration))
            .filter(Transcription.user_id == user_id, Transcription.status == STATUS_COMPLETED)
            .scalar()
            or 0
        )
        week_ago = datetime.utcnow() - timedelta(days=7)
        this_week = base.filter(Transcription.created_at >= week_ago).count()
        recent = base.order_by(Transcription.created_at.desc(), Transcription.id.desc()).limit(5).all()

        return {
            "total_transcriptions": total,
            "completed_transcriptions": completed,
            "total_minutes": round(total_seconds / 60),
            "this_week": this_week,
            "recent": recent,
        }

    def export_filename(self, record: Transcription, fmt: str) -> str:
        safe_title = re.sub(r"[^a-z0-9]", "_", record.title, flags=re.IGNORECASE)
        return f"{safe_title}.{fmt}"

    def generate_download_json(self, record: Transcription) -> str:
        return json.dumps(
            {
                "title": record.title,
                "transcription": record.transcription,
                "duration": record.duration,
                "confidence": record.confidence,
                "createdAt": record.created_at.isoformat(),
                "metadata": record.provider_metadata,
            },
            indent=2,
        )


def pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def is_valid_status_filter(status: str | None) -> bool:
    return status is None or status == "all" or status in STATUSES


_record_service: TranscriptionRecordService | None = None


def get_record_service() -> TranscriptionRecordService:
    """Get singleton transcription record service instance."""
    global _record_service
    if _record_service is None:
        _record_service = TranscriptionRecordService()
    return _record_service
