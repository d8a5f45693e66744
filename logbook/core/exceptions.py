"""Domain errors raised by the recording and transcription services."""


class LogbookError(Exception):
    """Base class for logbook domain errors."""

    code = "LOGBOOK_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LogbookError):
    """Addressed entry or recording does not exist (or is not visible to the caller)."""

    code = "NOT_FOUND"


class EntryNotFoundError(NotFoundError):
    code = "ENTRY_NOT_FOUND"


class RecordingNotFoundError(NotFoundError):
    code = "AUDIO_NOT_FOUND"


class TranscriptionInProgressError(LogbookError):
    """Transcription requested while the recording is already processing."""

    code = "TRANSCRIPTION_IN_PROGRESS"


class TranscriptRequiredError(LogbookError):
    """Operation needs a completed, non-empty transcript."""

    code = "TRANSCRIPT_REQUIRED"


class AudioUnreadableError(LogbookError):
    """
    Stored audio is missing or cannot be read.

    Permanent: retrying cannot bring back a deleted object.
    """

    code = "AUDIO_UNREADABLE"


class TranscriptionFailedError(LogbookError):
    """Speech backend call failed or timed out. Retryable under the queue."""

    code = "TRANSCRIPTION_ERROR"


class GenerationError(LogbookError):
    """Generative text backend failed or returned nothing."""

    code = "AI_GENERATION_ERROR"


class StorageError(LogbookError):
    """Audio could not be written to object storage."""

    code = "STORAGE_ERROR"


class NoSpeechDetectedError(LogbookError):
    """Backend succeeded but recognised no speech. Permanent."""

    code = "NO_SPEECH_DETECTED"
