"""Translation of domain errors into HTTP responses."""

import logging

from fastapi import HTTPException, status

from logbook.core.exceptions import (
    AudioUnreadableError,
    EntryNotFoundError,
    GenerationError,
    LogbookError,
    NoSpeechDetectedError,
    RecordingNotFoundError,
    StorageError,
    TranscriptionFailedError,
    TranscriptionInProgressError,
    TranscriptRequiredError,
)
from logbook.schemas.recording import ErrorDetail

logger = logging.getLogger(__name__)

# First match wins
ERROR_RESPONSES: list[tuple[type[LogbookError], int, str]] = [
    (EntryNotFoundError, status.HTTP_404_NOT_FOUND, "Log entry not found"),
    (RecordingNotFoundError, status.HTTP_404_NOT_FOUND, "Audio recording not found"),
    (TranscriptionInProgressError, status.HTTP_409_CONFLICT, "Transcription already in progress"),
    (TranscriptRequiredError, status.HTTP_400_BAD_REQUEST, "Audio must be transcribed first"),
    (NoSpeechDetectedError, 422, "No speech detected in audio"),
    (AudioUnreadableError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Audio file could not be read"),
    (TranscriptionFailedError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to transcribe audio"),
    (GenerationError, status.HTTP_502_BAD_GATEWAY, "Failed to generate AI response"),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to store audio recording"),
]


def http_error(exc: LogbookError) -> HTTPException:
    """Map a domain error to an HTTPException with a structured detail."""
    status_code, error = status.HTTP_500_INTERNAL_SERVER_ERROR, "Request failed"
    for exc_type, mapped_status, mapped_error in ERROR_RESPONSES:
        if isinstance(exc, exc_type):
            status_code, error = mapped_status, mapped_error
            break

    if status_code >= 500:
        logger.error(f"{error}: {exc.code}: {exc.message}")

    detail = ErrorDetail(error=error, code=exc.code, details=exc.message)
    return HTTPException(status_code=status_code, detail=detail.model_dump())
