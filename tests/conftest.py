"""Pytest configuration and fixtures."""

import asyncio
import os

# Keep password hashing fast; must be set before app settings are loaded
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings
from app.database import Base, get_db, get_session_factory
from app.dependencies import get_transcription_provider
from app.models.transcription import Transcription  # noqa: F401
from app.models.user import User  # noqa: F401
from app.services.auth import AuthService
from app.services.deepgram import TranscriptionProvider, TranscriptionResult

TEST_PASSWORD = "Sup3r-secret!"


class FakeProvider(TranscriptionProvider):
    """Stand-in for Deepgram: returns a canned result, or raises/sleeps when told to."""

    def __init__(self) -> None:
        self.result = TranscriptionResult(
            transcript="Hello from the meeting recording.",
            confidence=0.92,
            duration=42.0,
            metadata={"requestId": "req-123", "modelInfo": None, "processingTime": 120, "language": "en"},
        )
        self.error: Exception | None = None
        self.delay = 0.0
        self.file_calls: list[tuple[str, str]] = []
        self.buffer_calls: list[tuple[bytes, str]] = []

    async def transcribe_file(self, file_path, mime_type):
        self.file_calls.append((str(file_path), mime_type))
        return await self._respond()

    async def transcribe_buffer(self, audio, mime_type):
        self.buffer_calls.append((audio, mime_type))
        return await self._respond()

    async def _respond(self) -> TranscriptionResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Store uploaded audio under a per-test temp directory."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(get_settings(), "UPLOAD_DIR", str(path))
    return path


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Session factory bound to an in-memory SQLite database shared across sessions."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(session_factory):
    """Session for arranging and inspecting test data directly."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="provider")
def provider_fixture() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(name="client")
def client_fixture(session_factory, provider: FakeProvider):
    """Create a test client with overridden DB and provider dependencies and disabled rate limiting."""
    from app.rate_limit import limiter
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_transcription_provider] = lambda: provider
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


def _create_user(db_session: Session, username: str, email: str) -> dict:
    from app.services.jwt import get_jwt_service

    result = AuthService().register(db_session, username, email, TEST_PASSWORD)
    user = result.user
    tokens = get_jwt_service().create_token_pair(user.id, user.email, user.username, user.token_version)
    return {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "password": TEST_PASSWORD,
        "token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "headers": {"Authorization": f"Bearer {tokens.access_token}"},
    }


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session) -> dict:
    """Create a test user and return its details with a valid access token."""
    return _create_user(db_session, "testuser", "test@example.com")


@pytest.fixture(name="other_user")
def other_user_fixture(db_session: Session) -> dict:
    """A second account, for ownership checks."""
    return _create_user(db_session, "otheruser", "other@example.com")
