"""ARQ async task definitions for background processing."""

import logging
import time
from typing import Any
from uuid import UUID

from arq import Retry

from logbook.core.config import settings
from logbook.core.exceptions import (
    AudioUnreadableError,
    EntryNotFoundError,
    NoSpeechDetectedError,
    RecordingNotFoundError,
    TranscriptionFailedError,
)
from logbook.services.task_queue import record_job_outcome, retry_delay_seconds
from logbook.services.transcription_worker import TranscriptionWorker

logger = logging.getLogger(__name__)

# Retrying cannot change the outcome of these
PERMANENT_ERRORS = (
    EntryNotFoundError,
    RecordingNotFoundError,
    AudioUnreadableError,
    NoSpeechDetectedError,
)

UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"


async def transcribe_recording(
    ctx: dict[str, Any],
    entry_id: str,
    recording_id: str,
    storage_key: str,
) -> dict[str, Any]:
    """
    Transcribe one recording of a log entry.

    This is the queue-side entry point of the audio pipeline; the actual
    work is TranscriptionWorker.run, shared with the inline path.
    Workflow:
    1. On a retry attempt, re-claim the recording (skip if a user retry owns it)
    2. Run the worker (fetch, download, transcribe, persist)
    3. Backend failures: ask ARQ to retry with exponential backoff
    4. Record the finished job in the bounded history

    Args:
        ctx: ARQ context with transcription_worker, redis, job_id, job_try
        entry_id: UUID of the log entry
        recording_id: UUID of the recording
        storage_key: Object key of the audio (informational; the worker re-reads it)

    Returns:
        Dict with job outcome

    Raises:
        Retry: Transcription failed and attempts remain
        LogbookError: Permanent failure, or the final attempt failed
    """
    job_try = ctx.get("job_try", 1)
    max_tries = ctx.get("max_tries", settings.ARQ_MAX_TRIES)
    worker: TranscriptionWorker = ctx["transcription_worker"]
    task_start_time = time.time()

    summary: dict[str, Any] = {
        "job_id": ctx.get("job_id"),
        "job_try": job_try,
        "entry_id": entry_id,
        "recording_id": recording_id,
        "storage_key": storage_key,
    }
    logger.info(f"Starting transcription task for recording {recording_id} (try {job_try}/{max_tries})")

    recording_uuid = UUID(recording_id)

    # The first attempt runs on the dispatcher's claim
    if job_try > 1 and not await worker.store.claim_for_transcription(recording_uuid):
        logger.info(f"Recording {recording_id} already being transcribed elsewhere; skipping retry")
        await _record(ctx, "skipped", summary)
        return {**summary, "status": "skipped"}

    try:
        outcome = await worker.run(UUID(entry_id), recording_uuid)

    except PERMANENT_ERRORS as e:
        logger.error(f"Transcription of recording {recording_id} failed permanently: {e.code}")
        await _record(ctx, "failed", {**summary, "code": e.code, "error": e.message})
        raise

    except TranscriptionFailedError as e:
        if job_try < max_tries:
            delay = retry_delay_seconds(job_try, ctx.get("retry_base_delay", settings.ARQ_RETRY_BASE_DELAY_SEC))
            logger.warning(f"Transcription of recording {recording_id} failed on try {job_try}, retrying in {delay:.0f}s")
            raise Retry(defer=delay) from e

        logger.error(f"Transcription of recording {recording_id} failed after {job_try} attempts: {e.message}")
        await _record(ctx, "failed", {**summary, "code": e.code, "error": e.message})
        raise

    except Exception as e:
        # Already persisted on the recording by the worker
        logger.error(f"Transcription of recording {recording_id} failed unexpectedly: {e}", exc_info=True)
        await _record(ctx, "failed", {**summary, "code": UNEXPECTED_ERROR_CODE, "error": str(e)})
        raise

    total_time = time.time() - task_start_time
    result = {
        **summary,
        "status": outcome.status.value,
        "backend_call": outcome.backend_call.value,
        "text_length": len(outcome.transcript),
        "processing_time_sec": round(total_time, 2),
    }
    await _record(ctx, "completed", result)
    logger.info(f"Transcription task complete for recording {recording_id}: total_time={total_time:.2f}s")
    return result


async def _record(ctx: dict[str, Any], outcome: str, payload: dict[str, Any]) -> None:
    redis = ctx.get("redis")
    if redis is None:
        return
    keep = settings.ARQ_HISTORY_FAILED if outcome == "failed" else settings.ARQ_HISTORY_COMPLETED
    await record_job_outcome(redis, outcome, payload, keep)
