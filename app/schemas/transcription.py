"""Pydantic schemas for transcription endpoints."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field

from app.schemas.common import CamelModel


class TranscriptionListItem(CamelModel):
    id: int
    user_id: int
    username: str
    email: str
    title: str
    original_filename: str
    mime_type: str
    file_size: int
    duration: float
    transcription: str
    confidence: float
    language: str
    status: str
    source: str
    created_at: datetime
    updated_at: datetime


class TranscriptionResponse(TranscriptionListItem):
    # The ORM attribute cannot be called "metadata" (SQLAlchemy reserves it)
    provider_metadata: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("provider_metadata", "metadata"),
        serialization_alias="metadata",
    )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class TranscriptionListResponse(CamelModel):
    transcriptions: list[TranscriptionListItem]
    pagination: Pagination


class UploadResponse(CamelModel):
    success: bool
    transcription_id: int
    message: str
    transcription: TranscriptionResponse


class TranscriptionDetailResponse(CamelModel):
    transcription: TranscriptionResponse


class UpdateTranscriptionRequest(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)


class UpdateTranscriptionResponse(CamelModel):
    message: str
    transcription: TranscriptionResponse


class RecentTranscription(CamelModel):
    id: int
    title: str
    created_at: datetime
    duration: float
    status: str


class StatsSummary(CamelModel):
    total_transcriptions: int
    completed_transcriptions: int
    total_minutes: int
    this_week: int


class StatsResponse(CamelModel):
    stats: StatsSummary
    recent_transcriptions: list[RecentTranscription]
