"""Persistence of log entries' audio recordings and their transcription state.

Every write here is a single-row UPDATE keyed by the recording id and
touching only that recording's columns, so concurrent workers handling
sibling recordings of the same entry never overwrite each other.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from logbook.core.exceptions import EntryNotFoundError, RecordingNotFoundError
from logbook.models import AudioRecording, ChatMessage, ChatRole, LogEntry, TranscriptionStatus

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 1000

# Total order behind the index shown to users; id breaks position ties
INDEX_ORDER = (AudioRecording.position, AudioRecording.uploaded_at, AudioRecording.id)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordingStore:
    """
    Recording Store backed by SQLAlchemy.

    Each method runs in its own short session and commits before returning;
    callers never hold a session across a backend call.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entry(self, entry_id: UUID, owner_id: Optional[UUID] = None) -> LogEntry:
        """
        Fetch a log entry, optionally scoped to its owner.

        Raises:
            EntryNotFoundError: If the entry does not exist or belongs to someone else
        """
        async with self._session_maker() as session:
            entry = await self._load_entry(session, entry_id, owner_id)
        return entry

    async def list_recordings(self, entry_id: UUID, owner_id: Optional[UUID] = None) -> list[AudioRecording]:
        """Recordings of an entry in index order."""
        async with self._session_maker() as session:
            await self._load_entry(session, entry_id, owner_id)
            result = await session.execute(
                select(AudioRecording)
                .where(AudioRecording.entry_id == entry_id)
                .order_by(*INDEX_ORDER)
            )
            return list(result.scalars().all())

    async def get_recording_at(
        self,
        entry_id: UUID,
        index: int,
        owner_id: Optional[UUID] = None,
    ) -> AudioRecording:
        """
        Resolve a recording by its positional index within the entry.

        Raises:
            EntryNotFoundError: If the entry is missing or not owned by owner_id
            RecordingNotFoundError: If the index is out of range
        """
        async with self._session_maker() as session:
            await self._load_entry(session, entry_id, owner_id)

            if index < 0:
                raise RecordingNotFoundError(f"No audio recording at index {index} for entry {entry_id}")

            result = await session.execute(
                select(AudioRecording)
                .where(AudioRecording.entry_id == entry_id)
                .order_by(*INDEX_ORDER)
                .offset(index)
                .limit(1)
            )
            recording = result.scalar_one_or_none()

        if recording is None:
            raise RecordingNotFoundError(f"No audio recording at index {index} for entry {entry_id}")
        return recording

    async def get_recording(self, entry_id: UUID, recording_id: UUID) -> AudioRecording:
        """
        Fetch a recording fresh from the database by its stable id.

        Raises:
            EntryNotFoundError: If the entry no longer exists
            RecordingNotFoundError: If the recording was removed from the entry
        """
        async with self._session_maker() as session:
            await self._load_entry(session, entry_id, None)
            result = await session.execute(
                select(AudioRecording).where(
                    AudioRecording.id == recording_id,
                    AudioRecording.entry_id == entry_id,
                )
            )
            recording = result.scalar_one_or_none()

        if recording is None:
            raise RecordingNotFoundError(f"Recording {recording_id} not found in entry {entry_id}")
        return recording

    async def index_of(self, recording: AudioRecording) -> int:
        """
        Current positional index of a recording within its entry.

        Resolved with the same ordering as get_recording_at, so the two agree
        even when concurrent uploads landed on the same position.

        Raises:
            RecordingNotFoundError: If the recording was removed from the entry
        """
        async with self._session_maker() as session:
            result = await session.execute(
                select(AudioRecording.id)
                .where(AudioRecording.entry_id == recording.entry_id)
                .order_by(*INDEX_ORDER)
            )
            ordered_ids = list(result.scalars().all())

        if recording.id not in ordered_ids:
            raise RecordingNotFoundError(f"Recording {recording.id} not found in entry {recording.entry_id}")
        return ordered_ids.index(recording.id)

    # ------------------------------------------------------------------
    # Recording lifecycle
    # ------------------------------------------------------------------

    async def add_recording(
        self,
        entry_id: UUID,
        recording_id: UUID,
        storage_key: str,
        storage_bucket: str,
        original_filename: str,
        byte_size: int,
        content_type: Optional[str] = None,
        duration_sec: Optional[float] = None,
    ) -> AudioRecording:
        """Append a recording to an entry with status not_requested."""
        async with self._session_maker() as session:
            await self._load_entry(session, entry_id, None)

            max_position = await session.execute(
                select(func.max(AudioRecording.position)).where(AudioRecording.entry_id == entry_id)
            )
            current_max = max_position.scalar_one_or_none()
            position = 0 if current_max is None else current_max + 1

            recording = AudioRecording(
                id=recording_id,
                entry_id=entry_id,
                position=position,
                storage_key=storage_key,
                storage_bucket=storage_bucket,
                original_filename=original_filename,
                content_type=content_type,
                byte_size=byte_size,
                duration_sec=duration_sec,
                uploaded_at=_utcnow(),
                transcription_status=TranscriptionStatus.NOT_REQUESTED,
                transcription_attempts=0,
            )
            session.add(recording)
            await session.commit()
            await session.refresh(recording)

        logger.info(f"Recording {recording_id} added to entry {entry_id} at position {position}")
        return recording

    async def remove_recording(self, entry_id: UUID, index: int, owner_id: Optional[UUID] = None) -> AudioRecording:
        """Delete the recording at index; later recordings shift down one index."""
        recording = await self.get_recording_at(entry_id, index, owner_id)

        async with self._session_maker() as session:
            result = await session.execute(
                delete(AudioRecording)
                .where(AudioRecording.id == recording.id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            raise RecordingNotFoundError(f"No audio recording at index {index} for entry {entry_id}")

        logger.info(f"Recording {recording.id} removed from entry {entry_id}")
        return recording

    async def claim_for_transcription(self, recording_id: UUID) -> bool:
        """
        Atomically move a recording into processing.

        Conditional update: succeeds only if the recording is not already
        processing. Two racing requests cannot both win.

        Returns:
            True if this caller now owns the attempt, False otherwise
        """
        now = _utcnow()
        async with self._session_maker() as session:
            result = await session.execute(
                update(AudioRecording)
                .where(
                    AudioRecording.id == recording_id,
                    AudioRecording.transcription_status != TranscriptionStatus.PROCESSING,
                )
                .values(
                    transcription_status=TranscriptionStatus.PROCESSING,
                    transcription_started_at=now,
                    transcription_attempts=AudioRecording.transcription_attempts + 1,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        claimed = result.rowcount == 1
        if not claimed:
            logger.info(f"Recording {recording_id} already processing (or gone); claim refused")
        return claimed

    async def complete_transcription(
        self,
        recording_id: UUID,
        transcript: str,
        confidence: Optional[float] = None,
    ) -> bool:
        """Terminal success: write transcript, clear the last error."""
        return await self._update_fields(
            recording_id,
            transcription_status=TranscriptionStatus.COMPLETED,
            transcript=transcript,
            transcription_confidence=confidence,
            transcription_error=None,
            transcription_timestamp=_utcnow(),
        )

    async def fail_transcription(self, recording_id: UUID, message: str) -> bool:
        """Terminal failure: write the error, keep any earlier transcript."""
        return await self._update_fields(
            recording_id,
            transcription_status=TranscriptionStatus.FAILED,
            transcription_error=(message or "Transcription failed")[:ERROR_MESSAGE_MAX_LENGTH],
            transcription_timestamp=_utcnow(),
        )

    async def save_improved_transcript(self, recording_id: UUID, improved_transcript: str) -> bool:
        return await self._update_fields(
            recording_id,
            improved_transcript=improved_transcript,
            improved_transcript_timestamp=_utcnow(),
        )

    async def save_ai_response(
        self,
        entry_id: UUID,
        recording_id: UUID,
        ai_response: str,
        prompt_message: str,
    ) -> bool:
        """Store the clinical response and append the exchange to the entry chat history."""
        async with self._session_maker() as session:
            result = await session.execute(
                update(AudioRecording)
                .where(AudioRecording.id == recording_id, AudioRecording.entry_id == entry_id)
                .values(ai_response=ai_response, ai_response_timestamp=_utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                return False

            session.add(ChatMessage(entry_id=entry_id, role=ChatRole.USER, content=prompt_message))
            session.add(ChatMessage(entry_id=entry_id, role=ChatRole.MODEL, content=ai_response))
            await session.commit()
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _update_fields(self, recording_id: UUID, **values: object) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(
                update(AudioRecording)
                .where(AudioRecording.id == recording_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            logger.warning(f"Recording {recording_id} vanished before update of {sorted(values)}")
            return False
        return True

    @staticmethod
    async def _load_entry(session: AsyncSession, entry_id: UUID, owner_id: Optional[UUID]) -> LogEntry:
        query = select(LogEntry).where(LogEntry.id == entry_id)
        if owner_id is not None:
            query = query.where(LogEntry.user_id == owner_id)

        result = await session.execute(query)
        entry = result.scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(f"Log entry {entry_id} not found")
        return entry
