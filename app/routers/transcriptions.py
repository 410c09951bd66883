"""Transcription API endpoints."""

from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import FileResponse, PlainTextResponse, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_lifecycle
from app.errors import INVALID_CREDENTIALS, APIError, bad_request, not_found
from app.models.transcription import STATUS_COMPLETED
from app.models.user import User
from app.rate_limit import limiter
from app.schemas.transcription import (
    Pagination,
    RecentTranscription,
    StatsResponse,
    StatsSummary,
    TranscriptionDetailResponse,
    TranscriptionListItem,
    TranscriptionListResponse,
    TranscriptionResponse,
    UpdateTranscriptionRequest,
    UpdateTranscriptionResponse,
    UploadResponse,
)
from app.schemas.user import PasswordConfirmation
from app.services.audio_ingest import AudioValidationError, cleanup_file, stored_file_path
from app.services.auth import verify_password
from app.services.transcription import TranscriptionLifecycle
from app.services.transcription_records import get_record_service, is_valid_status_filter, pagination

router = APIRouter(prefix="/api/transcriptions", tags=["Transcriptions"])


@router.post("/upload", response_model=UploadResponse, status_code=201)
@limiter.limit("20/minute")
async def upload_and_transcribe(
    request: Request,
    background_tasks: BackgroundTasks,
    audio: UploadFile | None = File(None),
    title: str = Form("New Transcription", min_length=1, max_length=200),
    source: Literal["upload", "recording"] = Form("upload"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    lifecycle: TranscriptionLifecycle = Depends(get_lifecycle),
) -> UploadResponse:
    """Accept an audio file and start transcribing it in the background."""
    if audio is None:
        raise bad_request("No audio file provided")

    try:
        record = await lifecycle.submit(db, user, audio, title.strip() or "New Transcription", source, background_tasks)
    except AudioValidationError as e:
        raise bad_request(str(e)) from None

    return UploadResponse(
        success=True,
        transcription_id=record.id,
        message="File uploaded successfully. Transcription in progress.",
        transcription=TranscriptionResponse.model_validate(record),
    )


@router.get("", response_model=TranscriptionListResponse)
def list_transcriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    status: str | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TranscriptionListResponse:
    """List transcriptions with optional title search and status filter."""
    if not is_valid_status_filter(status):
        raise bad_request(f"Unknown status '{status}'")

    service = get_record_service()
    items, total = service.get_user_transcriptions(
        db, user.id, search=search, status=status, limit=limit, offset=(page - 1) * limit
    )
    return TranscriptionListResponse(
        transcriptions=[TranscriptionListItem.model_validate(item) for item in items],
        pagination=Pagination(**pagination(page, limit, total)),
    )


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatsResponse:
    """Totals for the dashboard."""
    data = get_record_service().get_user_stats(db, user.id)
    return StatsResponse(
        stats=StatsSummary(
            total_transcriptions=data["total_transcriptions"],
            completed_transcriptions=data["completed_transcriptions"],
            total_minutes=data["total_minutes"],
            this_week=data["this_week"],
        ),
        recent_transcriptions=[RecentTranscription.model_validate(r) for r in data["recent"]],
    )


@router.get("/{transcription_id}", response_model=TranscriptionDetailResponse)
def get_transcription(
    transcription_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TranscriptionDetailResponse:
    """Get a single transcription. Poll this to follow its status."""
    record = get_record_service().get_transcription(db, transcription_id, user.id)
    if not record:
        raise not_found("Transcription")
    return TranscriptionDetailResponse(transcription=TranscriptionResponse.model_validate(record))


@router.put("/{transcription_id}", response_model=UpdateTranscriptionResponse)
def update_transcription(
    transcription_id: int,
    body: UpdateTranscriptionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UpdateTranscriptionResponse:
    """Rename a transcription."""
    service = get_record_service()
    record = service.get_transcription(db, transcription_id, user.id)
    if not record:
        raise not_found("Transcription")
    if body.title is not None:
        record = service.update_title(db, record, body.title.strip())
    return UpdateTranscriptionResponse(
        message="Transcription updated successfully",
        transcription=TranscriptionResponse.model_validate(record),
    )


@router.delete("/{transcription_id}")
def delete_transcription(
    transcription_id: int,
    body: PasswordConfirmation,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Delete a transcription and its audio file. Requires the account password."""
    if not verify_password(body.password, user.password_hash):
        raise APIError(status_code=401, detail="Invalid password. Deletion cancelled.", code=INVALID_CREDENTIALS)

    service = get_record_service()
    record = service.get_transcription(db, transcription_id, user.id)
    if not record:
        raise not_found("Transcription")

    file_path = stored_file_path(record.user_id, record.stored_filename)
    service.delete_transcription(db, record)
    cleanup_file(file_path)
    return {"message": "Transcription deleted successfully"}


@router.get("/{transcription_id}/download")
def download_transcription(
    transcription_id: int,
    export_format: Literal["txt", "json"] = Query("txt", alias="format"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    """Download the transcript as plain text or JSON."""
    service = get_record_service()
    record = service.get_transcription(db, transcription_id, user.id)
    if not record:
        raise not_found("Transcription")
    if record.status != STATUS_COMPLETED:
        raise bad_request("Transcription not yet completed")

    headers = {"Content-Disposition": f'attachment; filename="{service.export_filename(record, export_format)}"'}
    if export_format == "json":
        return Response(content=service.generate_download_json(record), media_type="application/json", headers=headers)
    return PlainTextResponse(content=record.transcription, headers=headers)


@router.get("/{transcription_id}/audio")
def download_audio(
    transcription_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FileResponse:
    """Download the original audio file, if it is still stored."""
    record = get_record_service().get_transcription(db, transcription_id, user.id)
    if not record:
        raise not_found("Transcription")

    file_path = stored_file_path(record.user_id, record.stored_filename)
    if not file_path.exists():
        raise not_found("Audio file")

    return FileResponse(path=file_path, media_type=record.mime_type, filename=record.original_filename)
