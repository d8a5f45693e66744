"""Recording service: the transcription surface of a log entry.

Request handlers call into this; it owns nothing itself and composes the
store, object storage, dispatcher and generative post-processors.
"""

import io
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from logbook.core.exceptions import (
    RecordingNotFoundError,
    StorageError,
    TranscriptionInProgressError,
    TranscriptRequiredError,
)
from logbook.models import AudioRecording, TranscriptionStatus
from logbook.services.dispatcher import DispatchResult, TranscriptionDispatcher
from logbook.services.recording_store import RecordingStore
from logbook.services.storage import MinIOService, build_storage_key
from logbook.services.transcript_processing import (
    ClinicalResponder,
    TranscriptImprover,
    recording_prompt_message,
)
from logbook.services.transcription_worker import TranscriptionOutcome

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_EXTENSION = "webm"


def audio_file_extension(filename: Optional[str], content_type: Optional[str]) -> str:
    """Extension for the object key: filename suffix, else MIME subtype."""
    _, ext = os.path.splitext(filename or "")
    if ext:
        return ext.lstrip(".").lower()
    if content_type and "/" in content_type:
        return content_type.split("/")[-1].split(";")[0].strip().lower()
    return DEFAULT_AUDIO_EXTENSION


@dataclass(frozen=True)
class UploadOutcome:
    recording: AudioRecording
    index: int
    dispatch: DispatchResult


@dataclass(frozen=True)
class TranscriptionStatusView:
    transcription_status: TranscriptionStatus
    transcript: Optional[str]
    transcription_error: Optional[str]
    transcription_timestamp: Optional[datetime]

    @classmethod
    def from_recording(cls, recording: AudioRecording) -> "TranscriptionStatusView":
        return cls(
            transcription_status=recording.transcription_status,
            transcript=recording.transcript,
            transcription_error=recording.transcription_error,
            transcription_timestamp=recording.transcription_timestamp,
        )


class RecordingService:
    """Upload, status, retry and post-processing of one entry's recordings."""

    def __init__(
        self,
        store: RecordingStore,
        storage: MinIOService,
        dispatcher: TranscriptionDispatcher,
        improver: TranscriptImprover,
        responder: ClinicalResponder,
    ) -> None:
        self.store = store
        self.storage = storage
        self.dispatcher = dispatcher
        self.improver = improver
        self.responder = responder

    async def upload_recording(
        self,
        entry_id: UUID,
        owner_id: UUID,
        audio_data: bytes,
        filename: str,
        content_type: Optional[str],
        duration_sec: Optional[float] = None,
    ) -> UploadOutcome:
        """
        Store uploaded audio, create its recording and start transcription.

        Workflow:
        1. Check the entry exists and belongs to owner_id
        2. Write bytes to object storage under a fresh recording id
        3. Append the recording (status not_requested)
        4. Dispatch (queued, or inline when the queue is unavailable)

        Raises:
            EntryNotFoundError: If the entry is missing or owned by someone else
            StorageError: If the audio could not be stored
        """
        entry = await self.store.get_entry(entry_id, owner_id)

        recording_id = uuid.uuid4()
        storage_key = build_storage_key(
            entry.client_id,
            entry_id,
            recording_id,
            audio_file_extension(filename, content_type),
        )
        byte_size = len(audio_data)

        await self.storage.upload_recording(
            storage_key=storage_key,
            file_data=io.BytesIO(audio_data),
            file_size=byte_size,
            content_type=content_type or "application/octet-stream",
        )

        try:
            recording = await self.store.add_recording(
                entry_id=entry_id,
                recording_id=recording_id,
                storage_key=storage_key,
                storage_bucket=self.storage.bucket,
                original_filename=filename,
                byte_size=byte_size,
                content_type=content_type,
                duration_sec=duration_sec,
            )
        except Exception:
            logger.error(f"Failed to record upload {recording_id}; releasing {storage_key}", exc_info=True)
            await self._release_audio(storage_key)
            raise

        dispatch = await self.dispatcher.dispatch(entry_id, recording.id, storage_key, byte_size)

        recording = await self.store.get_recording(entry_id, recording.id)
        index = await self.store.index_of(recording)

        logger.info(
            f"Recording {recording.id} uploaded to entry {entry_id} "
            f"(index={index}, size={byte_size}, dispatch={dispatch.mode}, status={dispatch.status.value})"
        )
        return UploadOutcome(recording=recording, index=index, dispatch=dispatch)

    async def list_recordings(self, entry_id: UUID, owner_id: UUID) -> list[AudioRecording]:
        return await self.store.list_recordings(entry_id, owner_id)

    async def delete_recording(self, entry_id: UUID, index: int, owner_id: UUID) -> AudioRecording:
        """
        Remove the recording at index and release its audio object.

        The row goes first. A failed object deletion is logged (orphaned
        object) and does not resurrect the recording.
        """
        recording = await self.store.remove_recording(entry_id, index, owner_id)
        await self._release_audio(recording.storage_key)
        return recording

    async def get_status(self, entry_id: UUID, index: int, owner_id: UUID) -> TranscriptionStatusView:
        recording = await self.store.get_recording_at(entry_id, index, owner_id)
        return TranscriptionStatusView.from_recording(recording)

    async def request_transcription(self, entry_id: UUID, index: int, owner_id: UUID) -> TranscriptionOutcome:
        """
        User-facing retry: transcribe inline and report the result directly.

        Never goes through the queue. Worker failures are persisted on the
        recording and then propagate to the caller.

        Raises:
            TranscriptionInProgressError: If the recording is already processing
        """
        recording = await self.store.get_recording_at(entry_id, index, owner_id)

        if not await self.store.claim_for_transcription(recording.id):
            raise TranscriptionInProgressError(
                f"Transcription already in progress for recording {index} of entry {entry_id}"
            )

        logger.info(f"Transcription requested for recording {recording.id} (attempt {recording.transcription_attempts + 1})")
        return await self.dispatcher.worker.run(entry_id, recording.id)

    async def improve_transcript(self, entry_id: UUID, index: int, owner_id: UUID) -> AudioRecording:
        """
        Restructure the transcript into markdown sections.

        Writes improved_transcript only; transcript is left untouched.

        Raises:
            TranscriptRequiredError: If there is no transcript yet
            GenerationError: If the generative backend fails
        """
        recording = await self.store.get_recording_at(entry_id, index, owner_id)
        transcript = self._require_transcript(recording, index)

        improved = await self.improver.improve(transcript)

        if not await self.store.save_improved_transcript(recording.id, improved):
            raise RecordingNotFoundError(f"Recording {recording.id} was removed from entry {entry_id}")

        return await self.store.get_recording(entry_id, recording.id)

    async def generate_clinical_response(
        self,
        entry_id: UUID,
        index: int,
        owner_id: UUID,
        medical_specialty: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> AudioRecording:
        """
        Ask the clinical partner about this recording's transcript.

        Stores ai_response and appends the exchange to the entry chat history.

        Raises:
            TranscriptRequiredError: If there is no transcript yet
            GenerationError: If the generative backend fails
        """
        entry = await self.store.get_entry(entry_id, owner_id)
        recording = await self.store.get_recording_at(entry_id, index, owner_id)
        transcript = self._require_transcript(recording, index)

        system_prompt = ClinicalResponder.build_system_prompt(
            title=entry.title,
            category=entry.ai_context_category.value if entry.ai_context_category else None,
            notes=entry.notes,
            data=entry.data,
            specialty=medical_specialty,
            custom_instructions=custom_instructions,
        )
        response = await self.responder.respond(system_prompt, transcript)

        saved = await self.store.save_ai_response(
            entry_id,
            recording.id,
            response,
            recording_prompt_message(index, transcript),
        )
        if not saved:
            raise RecordingNotFoundError(f"Recording {recording.id} was removed from entry {entry_id}")

        logger.info(f"Clinical response stored for recording {recording.id} ({len(response)} chars)")
        return await self.store.get_recording(entry_id, recording.id)

    @staticmethod
    def _require_transcript(recording: AudioRecording, index: int) -> str:
        transcript = (recording.transcript or "").strip()
        if not transcript:
            raise TranscriptRequiredError(f"Audio recording {index} must be transcribed first")
        return recording.transcript

    async def _release_audio(self, storage_key: str) -> None:
        try:
            await self.storage.delete_recording(storage_key)
        except StorageError as e:
            logger.error(f"Orphaned audio object {storage_key}: {e}")
