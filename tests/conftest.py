"""Pytest configuration and fixtures for logbook tests."""

import asyncio
from typing import Any, AsyncGenerator, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from logbook.api.dependencies import User, get_current_user, get_recording_service
from logbook.core.config import settings
from logbook.core.exceptions import AudioUnreadableError, GenerationError, StorageError
from logbook.models import AIContextCategory, AudioRecording, Base, LogEntry
from logbook.services.dispatcher import TranscriptionDispatcher
from logbook.services.recording_store import RecordingStore
from logbook.services.recordings import RecordingService
from logbook.services.speech import SpeechResult
from logbook.services.storage import build_storage_key
from logbook.services.transcript_processing import ClinicalResponder, TranscriptImprover
from logbook.services.transcription_worker import TranscriptionWorker

OWNER_ID = UUID(settings.DEV_USER_ID)
CLIENT_ID = UUID(settings.DEV_CLIENT_ID)
OTHER_OWNER_ID = UUID("20000000-0000-0000-0000-000000000002")

ONE_MB = 1024 * 1024
SHORT_AUDIO = b"\x1a\x45\xdf\xa3" + b"\x00" * 4092  # 4 KB
LONG_AUDIO = b"\x1a\x45\xdf\xa3" + b"\x00" * (2 * ONE_MB - 4)  # 2 MB


# ============================================================================
# External Collaborator Fakes
# ============================================================================

class FakeStorage:
    """In-memory stand-in for MinIOService."""

    bucket = "test-audio"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_delete = False
        self.download_error: Optional[Exception] = None

    async def upload_recording(self, storage_key: str, file_data: Any, file_size: int, content_type: str) -> str:
        self.objects[storage_key] = file_data.read()
        return storage_key

    async def download_recording(self, storage_key: str) -> bytes:
        if self.download_error is not None:
            raise self.download_error
        if storage_key not in self.objects:
            raise AudioUnreadableError(
                f"Audio file {storage_key} is unreadable: NoSuchKey: Object does not exist"
            )
        return self.objects[storage_key]

    async def delete_recording(self, storage_key: str) -> None:
        if self.fail_delete:
            raise StorageError(f"Failed to delete audio {storage_key}: connection reset")
        self.objects.pop(storage_key, None)
        self.deleted.append(storage_key)


class FakeSpeechBackend:
    """Transcription backend counting which call each payload was routed to."""

    def __init__(self, transcript: str = "Patient reports intermittent chest pain for two days.") -> None:
        self.transcript = transcript
        self.confidence = 0.93
        self.calls = {"short": 0, "long": 0}
        self.error: Optional[Exception] = None
        self.hang = False
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def transcribe_short(self, audio_data: bytes, encoding: str, sample_rate: int, language_code: str) -> SpeechResult:
        self.calls["short"] += 1
        return await self._respond()

    async def transcribe_long(self, audio_data: bytes, encoding: str, sample_rate: int, language_code: str) -> SpeechResult:
        self.calls["long"] += 1
        return await self._respond()

    @property
    def total_calls(self) -> int:
        return self.calls["short"] + self.calls["long"]

    async def _respond(self) -> SpeechResult:
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.hang:
            await asyncio.sleep(3600)
        if self.error is not None:
            raise self.error
        return SpeechResult(transcript=self.transcript, confidence=self.confidence)


class FakeGenerationBackend:
    """Generative backend returning a canned reply and recording prompts."""

    def __init__(self, reply: str = "## Presenting Complaint\n\n* Intermittent **chest pain** for two days") -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def generate(self, system_prompt: str, user_prompt: str, model: Optional[str] = None) -> str:
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, "model": model})
        if self.error is not None:
            raise self.error
        return self.reply


class FakeTranscriptionQueue:
    """Connected queue that records enqueued jobs (or refuses them)."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.jobs: list[tuple[UUID, UUID, str]] = []
        self.history: dict[str, list[dict[str, Any]]] = {"completed": [], "failed": []}
        self.closed = False

    async def enqueue_transcription(self, entry_id: UUID, recording_id: UUID, storage_key: str) -> str:
        if self.fail:
            raise ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
        self.jobs.append((entry_id, recording_id, storage_key))
        return f"job-{len(self.jobs)}"

    async def recent_jobs(self, outcome: str = "failed", limit: int = 50) -> list[dict[str, Any]]:
        return self.history.get(outcome, [])[:limit]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class FakeRedis:
    """The list commands used for job history."""

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}

    async def lpush(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        self.lists[key] = self.lists.get(key, [])[start:end + 1]
        return True

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return self.lists.get(key, [])[start:end + 1]


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'logbook.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_maker) -> RecordingStore:
    return RecordingStore(session_maker)


@pytest_asyncio.fixture
async def entry(session_maker) -> LogEntry:
    """Log entry owned by the development principal."""
    log_entry = LogEntry(
        id=uuid4(),
        client_id=CLIENT_ID,
        user_id=OWNER_ID,
        title="Laparoscopic cholecystectomy",
        notes="Elective list, uncomplicated.",
        ai_context_category=AIContextCategory.PROCEDURE,
        data={"asa_grade": 2, "supervision": "independent"},
    )
    async with session_maker() as session:
        session.add(log_entry)
        await session.commit()
    return log_entry


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def speech_backend() -> FakeSpeechBackend:
    return FakeSpeechBackend()


@pytest.fixture
def generation_backend() -> FakeGenerationBackend:
    return FakeGenerationBackend()


@pytest.fixture
def worker(store, storage, speech_backend) -> TranscriptionWorker:
    return TranscriptionWorker(
        store=store,
        storage=storage,
        backend=speech_backend,
        encoding="WEBM_OPUS",
        sample_rate=48000,
        language_code="en-US",
        long_form_threshold_bytes=ONE_MB,
        timeout_sec=5,
    )


@pytest.fixture
def make_service(store, storage, worker, generation_backend):
    """Build a RecordingService around a given queue handle (None = inline)."""

    def _make(queue: Optional[FakeTranscriptionQueue] = None) -> RecordingService:
        return RecordingService(
            store=store,
            storage=storage,
            dispatcher=TranscriptionDispatcher(worker, queue),
            improver=TranscriptImprover(generation_backend, model="test-transcript-model"),
            responder=ClinicalResponder(generation_backend, model="test-clinical-model"),
        )

    return _make


@pytest.fixture
def service(make_service) -> RecordingService:
    return make_service(None)


@pytest.fixture
def add_stored_recording(store, storage):
    """Store audio bytes and append a recording row (status not_requested)."""

    async def _add(entry: LogEntry, audio: bytes = SHORT_AUDIO, filename: str = "dictation.webm") -> AudioRecording:
        recording_id = uuid4()
        storage_key = build_storage_key(entry.client_id, entry.id, recording_id, "webm")
        storage.objects[storage_key] = audio
        return await store.add_recording(
            entry_id=entry.id,
            recording_id=recording_id,
            storage_key=storage_key,
            storage_bucket=storage.bucket,
            original_filename=filename,
            byte_size=len(audio),
            content_type="audio/webm",
        )

    return _add


# ============================================================================
# HTTP Client Fixture
# ============================================================================

@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with auth and services replaced by test doubles."""
    from logbook.main import app

    app.dependency_overrides[get_current_user] = lambda: User(
        id=OWNER_ID,
        client_id=CLIENT_ID,
        email="practitioner@logbook.local",
        full_name="Test Practitioner",
    )
    app.dependency_overrides[get_recording_service] = lambda: service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def generation_error() -> GenerationError:
    return GenerationError("Generative AI request failed: 429 quota exceeded")
