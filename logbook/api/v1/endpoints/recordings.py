"""Recordings API endpoints."""

import os
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status

from logbook.api.dependencies import User, get_current_active_user, get_recording_service
from logbook.api.errors import http_error
from logbook.core.config import settings
from logbook.core.exceptions import LogbookError
from logbook.models import AudioRecording
from logbook.schemas.recording import RecordingResponse, RecordingUploadResponse
from logbook.services.recordings import RecordingService

router = APIRouter()


# Audio file validation constants
ALLOWED_AUDIO_TYPES = {
    "audio/mpeg",  # MP3
    "audio/mp3",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/ogg",
    "audio/oga",
    "audio/webm",
    "audio/mp4",
    "audio/m4a",
    "audio/x-m4a",
    "audio/aac",
    "audio/flac",
}

ALLOWED_AUDIO_EXTENSIONS = {".mp3", ".wav", ".ogg", ".webm", ".mp4", ".m4a", ".aac", ".flac"}


def is_allowed_audio(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Accept by MIME type, or by extension when the browser sends a generic type."""
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in ALLOWED_AUDIO_TYPES:
        return True
    _, ext = os.path.splitext(filename or "")
    return ext.lower() in ALLOWED_AUDIO_EXTENSIONS


def recording_response(recording: AudioRecording, index: int) -> RecordingResponse:
    return RecordingResponse.model_validate(recording).model_copy(update={"index": index})


@router.post(
    "/entries/{entry_id}/recordings",
    response_model=RecordingUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload audio recording",
    description="Upload an audio recording to a log entry. Transcription starts automatically.",
)
async def upload_recording(
    entry_id: UUID,
    file: Annotated[UploadFile, File(description="Audio file to transcribe")],
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
    duration: Annotated[Optional[float], Form(ge=0, description="Duration in seconds")] = None,
) -> RecordingUploadResponse:
    """
    Upload audio recording for a log entry.

    Validation:
    - Entry must exist and belong to the user
    - File type must be a supported audio format
    - File size must be between 1KB and MAX_UPLOAD_BYTES

    With the queue available the response returns once the job is accepted
    (status processing); otherwise after inline transcription finished.
    """
    if not is_allowed_audio(file.filename, file.content_type):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported audio format: {file.content_type}. "
            f"Allowed extensions: {', '.join(sorted(ALLOWED_AUDIO_EXTENSIONS))}",
        )

    # Read file content
    audio_data = await file.read()
    file_size = len(audio_data)

    # Validate file size
    if file_size < settings.MIN_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too small. Minimum size is {settings.MIN_UPLOAD_BYTES} bytes",
        )

    if file_size > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size is {settings.MAX_UPLOAD_BYTES / 1024 / 1024:.0f} MB",
        )

    try:
        outcome = await service.upload_recording(
            entry_id=entry_id,
            owner_id=current_user.id,
            audio_data=audio_data,
            filename=file.filename or "recording",
            content_type=file.content_type,
            duration_sec=duration,
        )
    except LogbookError as e:
        raise http_error(e) from e

    return RecordingUploadResponse(
        recording=recording_response(outcome.recording, outcome.index),
        dispatch_mode=outcome.dispatch.mode,
        job_id=outcome.dispatch.job_id,
    )


@router.get(
    "/entries/{entry_id}/recordings",
    response_model=list[RecordingResponse],
    summary="List recordings",
)
async def list_recordings(
    entry_id: UUID,
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
) -> list[RecordingResponse]:
    try:
        recordings = await service.list_recordings(entry_id, current_user.id)
    except LogbookError as e:
        raise http_error(e) from e

    return [recording_response(recording, index) for index, recording in enumerate(recordings)]


@router.delete(
    "/entries/{entry_id}/recordings/{index}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete recording",
    description="Remove a recording and its audio. Later recordings move up one index.",
)
async def delete_recording(
    entry_id: UUID,
    index: int,
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
) -> Response:
    try:
        await service.delete_recording(entry_id, index, current_user.id)
    except LogbookError as e:
        raise http_error(e) from e

    return Response(status_code=status.HTTP_204_NO_CONTENT)
