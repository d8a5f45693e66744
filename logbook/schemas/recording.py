"""Pydantic schemas for the recordings and transcription API."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from logbook.models.recording import TranscriptionStatus


class RecordingResponse(BaseModel):
    """One audio recording of a log entry."""

    id: UUID = Field(..., description="Stable recording ID")
    index: int = Field(0, description="Position of the recording within the entry")
    original_filename: str = Field(..., description="Original filename from upload")
    content_type: Optional[str] = Field(None, description="MIME type")
    byte_size: int = Field(..., description="File size in bytes")
    duration_sec: Optional[float] = Field(None, description="Duration in seconds")
    uploaded_at: datetime = Field(..., description="Upload time")
    transcription_status: TranscriptionStatus = Field(..., description="Current transcription status")
    transcript: Optional[str] = Field(None, description="Raw transcript")
    transcription_error: Optional[str] = Field(None, description="Last transcription error")
    transcription_timestamp: Optional[datetime] = Field(None, description="When the last attempt ended")
    transcription_attempts: int = Field(0, description="Number of transcription attempts")
    improved_transcript: Optional[str] = Field(None, description="Restructured transcript")
    improved_transcript_timestamp: Optional[datetime] = None
    ai_response: Optional[str] = Field(None, description="Clinical partner response")
    ai_response_timestamp: Optional[datetime] = None

    class Config:
        """Pydantic config."""

        from_attributes = True


class RecordingUploadResponse(BaseModel):
    """Response after successful upload."""

    message: str = "Audio uploaded successfully"
    recording: RecordingResponse
    dispatch_mode: str = Field(..., description="queued or inline")
    job_id: Optional[str] = Field(None, description="ARQ background job ID when queued")


class TranscriptionStatusResponse(BaseModel):
    """Transcription progress of one recording."""

    transcription_status: TranscriptionStatus
    transcript: Optional[str] = None
    transcription_error: Optional[str] = None
    transcription_timestamp: Optional[datetime] = None

    class Config:
        """Pydantic config."""

        from_attributes = True


class TranscriptionResultResponse(BaseModel):
    """Result of an explicit (inline) transcription request."""

    message: str = "Transcription completed successfully"
    transcription_status: TranscriptionStatus
    transcript: str
    backend_call: str = Field(..., description="short_form or long_form")


class ImprovedTranscriptResponse(BaseModel):
    message: str = "Transcript improved successfully"
    improved_transcript: str
    improved_transcript_timestamp: Optional[datetime] = None


class ClinicalResponseRequest(BaseModel):
    """Optional per-request preferences for the clinical partner."""

    medical_specialty: Optional[str] = Field(None, max_length=200)
    custom_instructions: Optional[str] = Field(None, max_length=4000)


class ClinicalResponseResponse(BaseModel):
    role: str = "model"
    content: str
    audio_index: int


class TranscriptionJobsResponse(BaseModel):
    """Recently finished transcription jobs, newest first."""

    queue_enabled: bool
    outcome: str
    jobs: list[dict[str, Any]] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    """Body of the `detail` field of every domain error response."""

    error: str
    code: str
    details: Optional[str] = None
