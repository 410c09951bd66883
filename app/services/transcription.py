"""Transcription lifecycle: accept an upload, transcribe it in the background, record the outcome.

A record starts in ``processing`` and ends in exactly one of ``completed`` or
``failed``. The provider call happens after the HTTP response has been sent;
whatever goes wrong with it, the record still reaches a terminal state. On
failure the stored audio is released but the row is kept so the user can see
what happened.
"""

import asyncio
import logging
from pathlib import Path

import anyio
from fastapi import BackgroundTasks, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.models.transcription import SOURCE_RECORDING, Transcription
from app.models.user import User
from app.services.audio_ingest import (
    AudioValidationError,
    cleanup_file,
    estimate_duration,
    store_file,
    validate_upload_metadata,
)
from app.services.deepgram import ProviderError, TranscriptionProvider, TranscriptionResult
from app.services.transcription_records import get_record_service

logger = logging.getLogger("vocalog")


class TranscriptionLifecycle:
    """Owns the processing -> completed/failed transitions of transcription records."""

    def __init__(self, provider: TranscriptionProvider, session_factory: sessionmaker) -> None:
        self.provider = provider
        self.session_factory = session_factory
        self.records = get_record_service()

    async def submit(
        self,
        db: Session,
        user: User,
        upload: UploadFile,
        title: str,
        source: str,
        background_tasks: BackgroundTasks,
    ) -> Transcription:
        """Validate and store the upload, create a processing record, schedule transcription.

        Raises AudioValidationError before anything is persisted if the upload is
        rejected. Does not wait for the provider.
        """
        error = validate_upload_metadata(upload.filename, upload.content_type)
        if error:
            raise AudioValidationError(error)

        stored = await store_file(user.id, upload)
        mime_type = upload.content_type or "application/octet-stream"

        try:
            record = self.records.create_processing(
                db=db,
                user=user,
                title=title,
                original_filename=upload.filename or "unknown",
                stored_filename=stored.stored_filename,
                mime_type=mime_type,
                file_size=stored.size,
                duration=estimate_duration(stored.size),
                source=source,
            )
        except Exception:
            db.rollback()
            cleanup_file(stored.path)
            raise

        logger.info(
            "Accepted %s (%d bytes) as transcription %s for user %s",
            record.original_filename,
            record.file_size,
            record.id,
            user.id,
        )
        background_tasks.add_task(self.process, record.id, str(stored.path), mime_type, source)
        return record

    async def process(self, transcription_id: int, file_path: str, mime_type: str, source: str) -> None:
        """Run the single provider call for a record and write its terminal state."""
        timeout = get_settings().TRANSCRIPTION_TIMEOUT_SECONDS
        try:
            result = await asyncio.wait_for(self._call_provider(file_path, mime_type, source), timeout=timeout)
            if not result.transcript.strip():
                raise ProviderError("Provider returned an empty transcript")
        except asyncio.TimeoutError:
            logger.error("Transcription %s timed out after %ss", transcription_id, timeout)
            await run_in_threadpool(self._fail, transcription_id, file_path)
            return
        except Exception:
            logger.exception("Transcription %s failed", transcription_id)
            await run_in_threadpool(self._fail, transcription_id, file_path)
            return

        await run_in_threadpool(self._complete, transcription_id, file_path, result)

    async def _call_provider(self, file_path: str, mime_type: str, source: str) -> TranscriptionResult:
        # Browser recordings are small; read them whole. Uploads are streamed from disk.
        if source == SOURCE_RECORDING:
            audio = await anyio.Path(file_path).read_bytes()
            return await self.provider.transcribe_buffer(audio, mime_type)
        return await self.provider.transcribe_file(Path(file_path), mime_type)

    def _complete(self, transcription_id: int, file_path: str, result: TranscriptionResult) -> None:
        db = self.session_factory()
        try:
            record = self.records.mark_completed(db, transcription_id, result)
            saved = True
        except SQLAlchemyError:
            logger.exception("Could not save transcript for %s", transcription_id)
            db.rollback()
            saved = False
        finally:
            db.close()

        if not saved:
            self._fail(transcription_id, file_path)
            return
        if record is None:
            logger.warning("Transcription %s was deleted before it completed", transcription_id)
            return
        logger.info("Transcription %s completed (%d chars)", transcription_id, len(result.transcript))

    def _fail(self, transcription_id: int, file_path: str) -> None:
        cleanup_file(file_path)
        db = self.session_factory()
        try:
            record = self.records.mark_failed(db, transcription_id)
        except SQLAlchemyError:
            logger.exception("Could not mark transcription %s as failed", transcription_id)
            db.rollback()
            return
        finally:
            db.close()
        if record is None:
            logger.warning("Transcription %s was deleted before it failed", transcription_id)
