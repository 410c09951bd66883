"""Transcription model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text

from app.database import Base

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUSES = (STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)

SOURCE_UPLOAD = "upload"
SOURCE_RECORDING = "recording"


class Transcription(Base):
    """Uploaded audio file and the transcript produced for it."""

    __tablename__ = "transcription"
    __table_args__ = (
        Index("ix_transcription_user_created", "user_id", "created_at"),
        Index("ix_transcription_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    # Copied from the owner at upload time, not kept in sync
    username = Column(String(30), nullable=False)
    email = Column(String(254), nullable=False)
    title = Column(String(200), nullable=False)
    original_filename = Column(String(512), nullable=False)
    stored_filename = Column(String(512), nullable=False, unique=True)
    mime_type = Column(String(128), nullable=False)
    file_size = Column(Integer, nullable=False)
    duration = Column(Float, nullable=False, default=0.0)
    transcription = Column(Text, nullable=False, default="")
    confidence = Column(Float, nullable=False, default=0.0)
    language = Column(String(16), nullable=False, default="en")
    status = Column(String(32), nullable=False, default=STATUS_PROCESSING)  # processing, completed, failed
    source = Column(String(16), nullable=False, default=SOURCE_UPLOAD)  # upload, recording
    provider_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
