"""Tests for the transcription worker and backend routing."""

import asyncio

import pytest

from logbook.core.exceptions import (
    AudioUnreadableError,
    EntryNotFoundError,
    NoSpeechDetectedError,
    RecordingNotFoundError,
    TranscriptionFailedError,
)
from logbook.models import TranscriptionStatus
from logbook.services import speech
from logbook.services.speech import LazyWhisperBackend
from logbook.services.transcription_worker import (
    INTERRUPTED_MESSAGE,
    BackendCall,
    TranscriptionWorker,
    choose_backend,
)
from tests.conftest import LONG_AUDIO, ONE_MB, SHORT_AUDIO


# ============================================================================
# Backend Routing
# ============================================================================

@pytest.mark.parametrize(
    "size_bytes, expected",
    [
        (1, BackendCall.SHORT_FORM),
        (ONE_MB - 1, BackendCall.SHORT_FORM),
        (ONE_MB, BackendCall.SHORT_FORM),
        (ONE_MB + 1, BackendCall.LONG_FORM),
        (50 * ONE_MB, BackendCall.LONG_FORM),
    ],
)
def test_choose_backend_by_size(size_bytes, expected):
    assert choose_backend(size_bytes, ONE_MB) is expected


def test_choose_backend_default_threshold_is_one_megabyte():
    assert choose_backend(ONE_MB) is BackendCall.SHORT_FORM
    assert choose_backend(ONE_MB + 1) is BackendCall.LONG_FORM


@pytest.mark.asyncio
async def test_small_payload_uses_short_form(worker, speech_backend, store, entry, add_stored_recording):
    recording = await add_stored_recording(entry, SHORT_AUDIO)
    await store.claim_for_transcription(recording.id)

    outcome = await worker.run(entry.id, recording.id)

    assert outcome.backend_call is BackendCall.SHORT_FORM
    assert speech_backend.calls == {"short": 1, "long": 0}


@pytest.mark.asyncio
async def test_large_payload_uses_long_form(worker, speech_backend, store, entry, add_stored_recording):
    recording = await add_stored_recording(entry, LONG_AUDIO)
    await store.claim_for_transcription(recording.id)

    outcome = await worker.run(entry.id, recording.id)

    assert outcome.backend_call is BackendCall.LONG_FORM
    assert speech_backend.calls == {"short": 0, "long": 1}


# ============================================================================
# Outcomes
# ============================================================================

@pytest.mark.asyncio
async def test_success_persists_transcript(worker, speech_backend, store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)

    outcome = await worker.run(entry.id, recording.id)

    assert outcome.status == TranscriptionStatus.COMPLETED
    assert outcome.persisted is True
    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.COMPLETED
    assert stored.transcript == speech_backend.transcript
    assert stored.transcription_confidence == pytest.approx(0.93)
    assert stored.transcription_error is None
    assert stored.transcription_timestamp is not None


@pytest.mark.asyncio
async def test_backend_failure_is_persisted_then_raised(worker, speech_backend, store, entry, add_stored_recording):
    speech_backend.error = RuntimeError("429 Resource exhausted: speech quota")
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)

    with pytest.raises(TranscriptionFailedError) as exc_info:
        await worker.run(entry.id, recording.id)

    assert "quota" in exc_info.value.message
    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert "quota" in stored.transcription_error
    assert stored.transcription_timestamp is not None


@pytest.mark.asyncio
async def test_missing_audio_is_permanent(worker, speech_backend, storage, store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    storage.objects.clear()
    await store.claim_for_transcription(recording.id)

    with pytest.raises(AudioUnreadableError):
        await worker.run(entry.id, recording.id)

    assert speech_backend.total_calls == 0
    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert "unreadable" in stored.transcription_error


@pytest.mark.asyncio
async def test_backend_timeout_fails_recording(worker, speech_backend, store, entry, add_stored_recording):
    worker.timeout_sec = 0.05
    speech_backend.hang = True
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)

    with pytest.raises(TranscriptionFailedError):
        await worker.run(entry.id, recording.id)

    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert "timed out" in stored.transcription_error


@pytest.mark.asyncio
async def test_empty_transcript_is_a_failure(worker, speech_backend, store, entry, add_stored_recording):
    speech_backend.transcript = "   "
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)

    with pytest.raises(NoSpeechDetectedError):
        await worker.run(entry.id, recording.id)

    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert stored.transcription_error


@pytest.mark.asyncio
async def test_recording_removed_before_worker_runs(worker, speech_backend, store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.remove_recording(entry.id, 0)

    with pytest.raises(RecordingNotFoundError):
        await worker.run(entry.id, recording.id)

    assert speech_backend.total_calls == 0


@pytest.mark.asyncio
async def test_unknown_entry(worker, entry, add_stored_recording):
    recording = await add_stored_recording(entry)

    with pytest.raises(EntryNotFoundError):
        await worker.run(recording.id, recording.id)


# ============================================================================
# Failures Outside the Backend Call
# ============================================================================

@pytest.mark.asyncio
async def test_unexpected_storage_error_marks_failed(worker, speech_backend, storage, store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)
    storage.download_error = OSError("[Errno 104] Connection reset by peer")

    with pytest.raises(OSError):
        await worker.run(entry.id, recording.id)

    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert "Connection reset by peer" in stored.transcription_error
    assert speech_backend.total_calls == 0


@pytest.mark.asyncio
async def test_interrupted_attempt_marks_failed(worker, speech_backend, store, entry, add_stored_recording):
    speech_backend.hang = True
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)

    attempt = asyncio.create_task(worker.run(entry.id, recording.id))
    await asyncio.wait_for(speech_backend.entered.wait(), timeout=5)
    attempt.cancel()

    with pytest.raises(asyncio.CancelledError):
        await attempt

    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert stored.transcription_error == INTERRUPTED_MESSAGE
    # Nothing left holding the claim
    assert await store.claim_for_transcription(recording.id) is True


@pytest.mark.asyncio
async def test_model_load_failure_is_a_transcription_failure(monkeypatch, store, storage, entry, add_stored_recording):
    def broken_model():
        raise RuntimeError("Whisper model initialization failed: model.bin not found")

    monkeypatch.setattr(speech, "get_whisper_service", broken_model)
    worker = TranscriptionWorker(store=store, storage=storage, backend=LazyWhisperBackend(), timeout_sec=5)
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)

    with pytest.raises(TranscriptionFailedError):
        await worker.run(entry.id, recording.id)

    stored = await store.get_recording(entry.id, recording.id)
    assert stored.transcription_status == TranscriptionStatus.FAILED
    assert "initialization failed" in stored.transcription_error
