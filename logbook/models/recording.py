"""Recording model - Audio recordings attached to log entries."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Enum as SQLEnum, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from logbook.models.base import Base, TimestampMixin


class TranscriptionStatus(str, Enum):
    """Transcription lifecycle of one recording."""

    NOT_REQUESTED = "not_requested"  # Uploaded, nothing asked yet
    PENDING = "pending"  # Accepted but not started
    PROCESSING = "processing"  # Attempt in flight
    COMPLETED = "completed"  # Terminal: transcript written
    FAILED = "failed"  # Terminal: transcription_error written


class AudioRecording(Base, TimestampMixin):
    """
    Audio Recording model.

    One uploaded audio artifact of a log entry and its transcription state.
    The ``id`` is stable for the life of the recording; the index shown to
    users is the recording's rank within the entry ordered by ``position``.
    Audio bytes live in MinIO under ``storage_key``.
    """

    __tablename__ = "audio_recordings"
    __table_args__ = (
        # Ordered listing of an entry's recordings
        Index("idx_audio_recordings_entry_position", "entry_id", "position"),
        # Monitoring: find stuck/failed recordings
        Index("idx_audio_recordings_status", "transcription_status", "updated_at"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID), stable recording identifier",
    )

    entry_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("log_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Log entry this recording belongs to",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Display order within the entry (insertion order)",
    )

    # Storage metadata
    storage_key: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        unique=True,
        comment="Object key in MinIO (client_id/entry_id/recording_id.ext)",
    )

    storage_bucket: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="MinIO bucket name",
    )

    # File metadata
    original_filename: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Original filename from upload",
    )

    content_type: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="MIME type (audio/webm, audio/mpeg, etc.)",
    )

    byte_size: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="File size in bytes",
    )

    duration_sec: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Duration in seconds as reported by the recorder",
    )

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Transcription lifecycle
    transcription_status: Mapped[TranscriptionStatus] = mapped_column(
        SQLEnum(TranscriptionStatus, name="transcription_status", native_enum=False, create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TranscriptionStatus.NOT_REQUESTED,
        comment="Current transcription status",
    )

    transcript: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Last successful transcript",
    )

    transcription_confidence: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
    )

    transcription_error: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        comment="Error message of the last failed attempt",
    )

    transcription_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of attempts started",
    )

    transcription_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    transcription_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the last terminal state was reached",
    )

    # Post-processing
    improved_transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    improved_transcript_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    ai_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ai_response_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<AudioRecording id={self.id} entry={self.entry_id} status={self.transcription_status.value}>"
