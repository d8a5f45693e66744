"""Pydantic schemas for request/response validation."""

from logbook.schemas.recording import (
    ClinicalResponseRequest,
    ClinicalResponseResponse,
    ErrorDetail,
    ImprovedTranscriptResponse,
    RecordingResponse,
    RecordingUploadResponse,
    TranscriptionJobsResponse,
    TranscriptionResultResponse,
    TranscriptionStatusResponse,
)

__all__ = [
    "RecordingResponse",
    "RecordingUploadResponse",
    "TranscriptionStatusResponse",
    "TranscriptionResultResponse",
    "ImprovedTranscriptResponse",
    "ClinicalResponseRequest",
    "ClinicalResponseResponse",
    "TranscriptionJobsResponse",
    "ErrorDetail",
]
