"""Transcription status, retry and post-processing endpoints."""

from typing import Annotated, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query

from logbook.api.dependencies import (
    User,
    get_current_active_user,
    get_recording_service,
    get_transcription_queue,
)
from logbook.api.errors import http_error
from logbook.core.exceptions import LogbookError
from logbook.schemas.recording import (
    ClinicalResponseRequest,
    ClinicalResponseResponse,
    ImprovedTranscriptResponse,
    TranscriptionJobsResponse,
    TranscriptionResultResponse,
    TranscriptionStatusResponse,
)
from logbook.services.recordings import RecordingService
from logbook.services.task_queue import TranscriptionQueue

router = APIRouter()


@router.get(
    "/entries/{entry_id}/recordings/{index}/transcription",
    response_model=TranscriptionStatusResponse,
    summary="Get transcription status",
)
async def get_transcription(
    entry_id: UUID,
    index: int,
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
) -> TranscriptionStatusResponse:
    """Current transcription state: status, transcript, last error and when it ended."""
    try:
        view = await service.get_status(entry_id, index, current_user.id)
    except LogbookError as e:
        raise http_error(e) from e

    return TranscriptionStatusResponse.model_validate(view)


@router.post(
    "/entries/{entry_id}/recordings/{index}/transcription",
    response_model=TranscriptionResultResponse,
    summary="Transcribe recording",
    description="Transcribe (or re-transcribe) a recording and wait for the result. "
    "Rejected with 409 while a transcription is already running.",
)
async def request_transcription(
    entry_id: UUID,
    index: int,
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
) -> TranscriptionResultResponse:
    try:
        outcome = await service.request_transcription(entry_id, index, current_user.id)
    except LogbookError as e:
        raise http_error(e) from e

    return TranscriptionResultResponse(
        transcription_status=outcome.status,
        transcript=outcome.transcript,
        backend_call=outcome.backend_call.value,
    )


@router.post(
    "/entries/{entry_id}/recordings/{index}/improved-transcript",
    response_model=ImprovedTranscriptResponse,
    summary="Improve transcript",
    description="Restructure the transcript into markdown sections. The raw transcript is kept as is.",
)
async def improve_transcript(
    entry_id: UUID,
    index: int,
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
) -> ImprovedTranscriptResponse:
    try:
        recording = await service.improve_transcript(entry_id, index, current_user.id)
    except LogbookError as e:
        raise http_error(e) from e

    return ImprovedTranscriptResponse(
        improved_transcript=recording.improved_transcript,
        improved_transcript_timestamp=recording.improved_transcript_timestamp,
    )


@router.post(
    "/entries/{entry_id}/recordings/{index}/ai-response",
    response_model=ClinicalResponseResponse,
    summary="Clinical response to recording",
    description="Ask the AI clinical partner for insights on this recording's transcript.",
)
async def generate_ai_response(
    entry_id: UUID,
    index: int,
    current_user: Annotated[User, Depends(get_current_active_user)],
    service: Annotated[RecordingService, Depends(get_recording_service)],
    preferences: Annotated[Optional[ClinicalResponseRequest], Body()] = None,
) -> ClinicalResponseResponse:
    preferences = preferences or ClinicalResponseRequest()
    try:
        recording = await service.generate_clinical_response(
            entry_id,
            index,
            current_user.id,
            medical_specialty=preferences.medical_specialty,
            custom_instructions=preferences.custom_instructions,
        )
    except LogbookError as e:
        raise http_error(e) from e

    return ClinicalResponseResponse(content=recording.ai_response, audio_index=index)


@router.get(
    "/transcription-jobs",
    response_model=TranscriptionJobsResponse,
    summary="Recent transcription jobs",
    description="Bounded history of finished queue jobs for operational diagnosis.",
)
async def list_transcription_jobs(
    current_user: Annotated[User, Depends(get_current_active_user)],
    queue: Annotated[Optional[TranscriptionQueue], Depends(get_transcription_queue)],
    outcome: Literal["failed", "completed"] = "failed",
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> TranscriptionJobsResponse:
    if queue is None:
        return TranscriptionJobsResponse(queue_enabled=False, outcome=outcome)

    jobs = await queue.recent_jobs(outcome, limit)
    return TranscriptionJobsResponse(queue_enabled=True, outcome=outcome, jobs=jobs)
