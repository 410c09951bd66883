"""Speech-to-text provider client for the Deepgram pre-recorded API."""

import logging
import os
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio
import httpx

from app.config import Settings

logger = logging.getLogger("vocalog")

FILE_CHUNK_SIZE = 1024 * 64


class ProviderError(Exception):
    """The transcription provider call failed or returned nothing usable."""


@dataclass
class TranscriptionResult:
    transcript: str
    confidence: float = 0.0
    duration: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class TranscriptionProvider:
    """Provider interface. Both entry points must return the same result shape."""

    async def transcribe_file(self, file_path: str | Path, mime_type: str) -> TranscriptionResult:
        raise NotImplementedError

    async def transcribe_buffer(self, audio: bytes, mime_type: str) -> TranscriptionResult:
        raise NotImplementedError

    def health_check(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


async def _iter_file(file_path: Path) -> AsyncIterator[bytes]:
    async with await anyio.open_file(file_path, "rb") as f:
        while True:
            chunk = await f.read(FILE_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class DeepgramClient(TranscriptionProvider):
    """Deepgram REST client. One attempt per call; failures raise ProviderError."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepgram.com",
        model: str = "nova-2",
        language: str = "en",
        timeout: float = 300.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.language = language
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeepgramClient":
        return cls(
            api_key=settings.DEEPGRAM_API_KEY,
            base_url=settings.DEEPGRAM_BASE_URL,
            model=settings.DEEPGRAM_MODEL,
            language=settings.DEEPGRAM_LANGUAGE,
            timeout=settings.TRANSCRIPTION_TIMEOUT_SECONDS,
        )

    def health_check(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _options(self) -> dict[str, str]:
        return {
            "model": self.model,
            "language": self.language,
            "smart_format": "true",
            "punctuate": "true",
            "paragraphs": "true",
            "utterances": "true",
            "diarize": "false",
        }

    async def transcribe_file(self, file_path: str | Path, mime_type: str) -> TranscriptionResult:
        """Stream a stored file to Deepgram without loading it into memory."""
        path = Path(file_path)
        logger.info("Transcribing file: %s", path)
        try:
            size = os.path.getsize(path)
        except OSError as e:
            raise ProviderError(f"Audio file unavailable: {e}") from e
        return await self._listen(_iter_file(path), mime_type, content_length=size)

    async def transcribe_buffer(self, audio: bytes, mime_type: str) -> TranscriptionResult:
        """Send an in-memory audio buffer to Deepgram."""
        logger.info("Transcribing audio buffer (%d bytes)", len(audio))
        return await self._listen(audio, mime_type, content_length=len(audio))

    async def _listen(self, content: Any, mime_type: str, content_length: int) -> TranscriptionResult:
        if not self.api_key:
            raise ProviderError("DEEPGRAM_API_KEY is not set")

        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": mime_type or "application/octet-stream",
            "Content-Length": str(content_length),
            "Accept": "application/json",
        }
        started = time.monotonic()
        try:
            response = await self._client.post("/v1/listen", params=self._options(), headers=headers, content=content)
        except httpx.HTTPError as e:
            raise ProviderError(f"Deepgram request failed: {e}") from e
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if response.status_code >= 400:
            raise ProviderError(f"Deepgram API error {response.status_code}: {response.text[:400]}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError("Deepgram returned a non-JSON response") from e

        result = parse_listen_response(payload, elapsed_ms)
        logger.info("Transcription completed. Length: %d chars", len(result.transcript))
        return result


def parse_listen_response(payload: Any, elapsed_ms: int = 0) -> TranscriptionResult:
    """Pull transcript, confidence, duration and metadata out of a /v1/listen response."""
    try:
        channel = payload["results"]["channels"][0]
        alternative = channel["alternatives"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderError("No transcription results returned from Deepgram") from e
    if not isinstance(alternative, dict):
        raise ProviderError("No transcription results returned from Deepgram")

    meta = payload.get("metadata") or {}
    processing = meta.get("processing") or {}
    metadata = {
        "requestId": meta.get("request_id"),
        "modelInfo": meta.get("model_info"),
        "processingTime": processing.get("total_time") or elapsed_ms,
        "language": channel.get("detected_language"),
        "channels": meta.get("channels"),
    }

    return TranscriptionResult(
        transcript=alternative.get("transcript") or "",
        confidence=float(alternative.get("confidence") or 0),
        duration=float(meta.get("duration") or 0),
        metadata=metadata,
    )
