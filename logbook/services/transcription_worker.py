"""Transcription of one recording: fetch, transcribe, persist.

The same TranscriptionWorker.run is awaited by the ARQ task and by the
inline dispatch path, so both behave identically.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from logbook.core.config import settings
from logbook.core.exceptions import (
    AudioUnreadableError,
    LogbookError,
    NoSpeechDetectedError,
    TranscriptionFailedError,
)
from logbook.models import AudioRecording, TranscriptionStatus
from logbook.services.recording_store import RecordingStore
from logbook.services.speech import SpeechResult, TranscriptionBackend
from logbook.services.storage import MinIOService

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Transcription was interrupted before it finished"


class BackendCall(str, Enum):
    """Which backend call a payload is routed to."""

    SHORT_FORM = "short_form"
    LONG_FORM = "long_form"


def choose_backend(size_bytes: int, threshold_bytes: Optional[int] = None) -> BackendCall:
    """
    Route by payload size.

    Above the threshold (1 MB, roughly a minute of compressed audio) the
    short-form call would hit its duration ceiling, so use long-form.
    """
    threshold = settings.LONG_FORM_THRESHOLD_BYTES if threshold_bytes is None else threshold_bytes
    return BackendCall.LONG_FORM if size_bytes > threshold else BackendCall.SHORT_FORM


@dataclass(frozen=True)
class TranscriptionOutcome:
    entry_id: UUID
    recording_id: UUID
    status: TranscriptionStatus
    transcript: str
    confidence: Optional[float]
    backend_call: BackendCall
    persisted: bool = True


class TranscriptionWorker:
    """
    Performs the speech-to-text call for one recording and persists the outcome.

    Failures are written to the recording (status failed + error) before the
    exception propagates; whether it is retried is the caller's business.
    """

    def __init__(
        self,
        store: RecordingStore,
        storage: MinIOService,
        backend: TranscriptionBackend,
        encoding: Optional[str] = None,
        sample_rate: Optional[int] = None,
        language_code: Optional[str] = None,
        long_form_threshold_bytes: Optional[int] = None,
        timeout_sec: Optional[float] = None,
    ) -> None:
        self.store = store
        self.storage = storage
        self.backend = backend
        self.encoding = encoding or settings.SPEECH_ENCODING
        self.sample_rate = sample_rate or settings.SPEECH_SAMPLE_RATE_HZ
        self.language_code = language_code or settings.SPEECH_LANGUAGE_CODE
        self.long_form_threshold_bytes = (
            long_form_threshold_bytes
            if long_form_threshold_bytes is not None
            else settings.LONG_FORM_THRESHOLD_BYTES
        )
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.TRANSCRIPTION_TIMEOUT_SEC

    async def run(self, entry_id: UUID, recording_id: UUID) -> TranscriptionOutcome:
        """
        Transcribe one recording.

        Workflow:
        1. Re-fetch the recording (never trust the enqueue side's copy)
        2. Read audio bytes from storage
        3. Pick short- or long-form backend call by payload size
        4. Write transcript (completed) or error (failed)

        Raises:
            EntryNotFoundError: Entry deleted since dispatch
            RecordingNotFoundError: Recording removed since dispatch
            AudioUnreadableError: Audio missing/unreadable (permanent, persisted)
            TranscriptionFailedError: Backend failure or timeout (persisted)
            NoSpeechDetectedError: Backend returned an empty transcript (persisted)
            asyncio.CancelledError: Attempt interrupted (persisted as failed)

        Any other error after the fetch is also persisted before it propagates,
        so a claimed recording never stays processing.
        """
        task_start_time = time.time()

        recording = await self.store.get_recording(entry_id, recording_id)
        logger.info(
            f"Transcribing recording {recording_id} of entry {entry_id} "
            f"(storage_key={recording.storage_key})"
        )

        try:
            return await self._transcribe(entry_id, recording, task_start_time)
        except LogbookError:
            raise
        except asyncio.CancelledError:
            logger.warning(f"Transcription of recording {recording_id} was interrupted")
            await self._fail_after_error(recording_id, INTERRUPTED_MESSAGE)
            raise
        except Exception as e:
            logger.error(f"Unexpected error transcribing recording {recording_id}: {e}", exc_info=True)
            message = f"Unexpected transcription error: {str(e) or e.__class__.__name__}"
            await self._fail_after_error(recording_id, message)
            raise

    async def _fail_after_error(self, recording_id: UUID, message: str) -> None:
        # The original error is what propagates; a failing write is only logged
        try:
            await self.store.fail_transcription(recording_id, message)
        except Exception as e:
            logger.error(f"Could not mark recording {recording_id} as failed: {e}", exc_info=True)

    async def _transcribe(
        self,
        entry_id: UUID,
        recording: AudioRecording,
        task_start_time: float,
    ) -> TranscriptionOutcome:
        recording_id = recording.id

        try:
            audio_data = await self.storage.download_recording(recording.storage_key)
        except AudioUnreadableError as e:
            logger.error(f"Audio unreadable for recording {recording_id}: {e}")
            await self.store.fail_transcription(recording_id, str(e))
            raise

        backend_call = choose_backend(len(audio_data), self.long_form_threshold_bytes)
        logger.info(
            f"Using {backend_call.value} transcription for "
            f"{len(audio_data) / (1024 * 1024):.2f}MB recording {recording_id}"
        )

        try:
            result = await asyncio.wait_for(self._call_backend(backend_call, audio_data), timeout=self.timeout_sec)
        except asyncio.TimeoutError as e:
            message = f"Transcription timed out after {self.timeout_sec:.0f}s"
            logger.error(f"{message} for recording {recording_id}")
            await self.store.fail_transcription(recording_id, message)
            raise TranscriptionFailedError(message) from e
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Transcription failed for recording {recording_id}: {message}", exc_info=True)
            await self.store.fail_transcription(recording_id, message)
            raise TranscriptionFailedError(message) from e

        transcript = (result.transcript or "").strip()
        if not transcript:
            message = "No speech was recognised in the recording"
            logger.warning(f"{message}: {recording_id}")
            await self.store.fail_transcription(recording_id, message)
            raise NoSpeechDetectedError(message)

        persisted = await self.store.complete_transcription(recording_id, transcript, result.confidence)

        logger.info(
            f"Transcription complete for recording {recording_id}: "
            f"text_length={len(transcript)}, total_time={time.time() - task_start_time:.2f}s"
        )

        return TranscriptionOutcome(
            entry_id=entry_id,
            recording_id=recording_id,
            status=TranscriptionStatus.COMPLETED,
            transcript=transcript,
            confidence=result.confidence,
            backend_call=backend_call,
            persisted=persisted,
        )

    async def _call_backend(self, backend_call: BackendCall, audio_data: bytes) -> SpeechResult:
        if backend_call is BackendCall.LONG_FORM:
            return await self.backend.transcribe_long(audio_data, self.encoding, self.sample_rate, self.language_code)
        return await self.backend.transcribe_short(audio_data, self.encoding, self.sample_rate, self.language_code)
