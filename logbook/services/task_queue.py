"""Transcription job queue (ARQ on Redis) and its bounded job history."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

logger = logging.getLogger(__name__)

TRANSCRIBE_JOB_NAME = "transcribe_recording"

HISTORY_KEY_PREFIX = "logbook:transcription-jobs"
JOB_OUTCOMES = ("completed", "failed", "skipped")


def retry_delay_seconds(job_try: int, base_delay: float = 2.0) -> float:
    """
    Exponential backoff before the next attempt.

    job_try is the attempt that just failed (1-based): 2s, 4s, 8s...
    """
    return base_delay * 2 ** (max(job_try, 1) - 1)


def history_key(outcome: str) -> str:
    # skipped jobs are kept alongside completed ones
    bucket = "failed" if outcome == "failed" else "completed"
    return f"{HISTORY_KEY_PREFIX}:{bucket}"


async def record_job_outcome(
    redis: Any,
    outcome: str,
    payload: dict[str, Any],
    keep: int,
) -> None:
    """
    Push a finished job onto its history list and trim to the last `keep`.

    Args:
        redis: ArqRedis (or any redis.asyncio client) from the worker context
        outcome: completed | failed | skipped
        payload: JSON-serializable job summary
        keep: Number of records retained for this outcome
    """
    if outcome not in JOB_OUTCOMES:
        raise ValueError(f"Unknown job outcome: {outcome}")

    record = {
        **payload,
        "outcome": outcome,
        "finished_at": datetime.now(timezone.utc).isoformat(),
    }
    key = history_key(outcome)
    await redis.lpush(key, json.dumps(record, default=str))
    await redis.ltrim(key, 0, keep - 1)


class TranscriptionQueue:
    """
    Connected transcription queue.

    An instance only exists while a broker connection was established at
    startup; "queue disabled" is represented by having no instance at all.
    """

    def __init__(self, pool: ArqRedis, queue_name: str) -> None:
        self._pool = pool
        self.queue_name = queue_name

    async def enqueue_transcription(
        self,
        entry_id: UUID,
        recording_id: UUID,
        storage_key: str,
    ) -> str:
        """
        Enqueue the transcription job for one recording.

        Returns:
            str: Job ID from ARQ

        Raises:
            RuntimeError: If ARQ refuses the job
            Exception: Broker/connection errors propagate to the caller
        """
        job = await self._pool.enqueue_job(
            TRANSCRIBE_JOB_NAME,
            str(entry_id),
            str(recording_id),
            storage_key,
            _queue_name=self.queue_name,
        )
        if job is None:
            raise RuntimeError(f"ARQ refused transcription job for recording {recording_id}")

        logger.info(f"Enqueued transcription job {job.job_id} for recording {recording_id}")
        return job.job_id

    async def recent_jobs(self, outcome: str = "failed", limit: int = 50) -> list[dict[str, Any]]:
        """Most recent finished jobs, newest first."""
        raw = await self._pool.lrange(history_key(outcome), 0, max(limit, 1) - 1)
        return [json.loads(item) for item in raw]

    async def ping(self) -> bool:
        return bool(await self._pool.ping())

    async def close(self) -> None:
        """Close Redis pool."""
        await self._pool.close()
        logger.info("Transcription queue connection closed")


async def connect_transcription_queue(
    redis_url: Optional[str],
    queue_name: str,
    conn_retries: int = 3,
) -> Optional[TranscriptionQueue]:
    """
    Connect to the broker once, at startup.

    No URL means the queue is disabled. An unreachable broker is logged and
    also leaves the queue disabled: the caller gets None and every dispatch
    runs inline until the process restarts.
    """
    if not redis_url:
        logger.info("ARQ_REDIS_URL not set; transcription runs inline")
        return None

    redis_settings = RedisSettings.from_dsn(redis_url)
    redis_settings.conn_retries = conn_retries

    try:
        pool = await create_pool(redis_settings)
    except Exception as e:
        logger.warning(
            f"Transcription queue unavailable, falling back to inline transcription: {e}",
            exc_info=True,
        )
        return None

    logger.info(f"Transcription queue connected (queue={queue_name})")
    return TranscriptionQueue(pool, queue_name)
