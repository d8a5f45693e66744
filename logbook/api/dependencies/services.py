"""Service dependencies for API endpoints."""

from typing import Optional

from fastapi import Request

from logbook.core.database import async_session_maker
from logbook.services.dispatcher import TranscriptionDispatcher
from logbook.services.generation import get_generation_service
from logbook.services.recording_store import RecordingStore
from logbook.services.recordings import RecordingService
from logbook.services.speech import LazyWhisperBackend
from logbook.services.storage import get_minio_service
from logbook.services.task_queue import TranscriptionQueue
from logbook.services.transcript_processing import ClinicalResponder, TranscriptImprover
from logbook.services.transcription_worker import TranscriptionWorker


def get_transcription_queue(request: Request) -> Optional[TranscriptionQueue]:
    """Queue connected at startup, or None when transcription runs inline."""
    return getattr(request.app.state, "transcription_queue", None)


def get_recording_service(request: Request) -> RecordingService:
    """Assemble the recording service for one request."""
    store = RecordingStore(async_session_maker)
    storage = get_minio_service()
    worker = TranscriptionWorker(store=store, storage=storage, backend=LazyWhisperBackend())
    generation = get_generation_service()

    return RecordingService(
        store=store,
        storage=storage,
        dispatcher=TranscriptionDispatcher(worker, get_transcription_queue(request)),
        improver=TranscriptImprover(generation),
        responder=ClinicalResponder(generation),
    )
