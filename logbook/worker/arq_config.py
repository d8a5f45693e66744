"""ARQ worker configuration for async task processing."""

import logging
from typing import Any

from arq.connections import RedisSettings
from arq.worker import func

from logbook.core.config import settings
from logbook.worker.tasks import transcribe_recording

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """
    Worker startup hook.

    Initializes services needed by worker tasks:
    - MinIO client for audio file access
    - Whisper model for transcription
    - Recording store on the shared database pool
    """
    from logbook.core.database import async_session_maker
    from logbook.core.logging import setup_logging
    from logbook.services.recording_store import RecordingStore
    from logbook.services.speech import get_whisper_service
    from logbook.services.storage import get_minio_service
    from logbook.services.transcription_worker import TranscriptionWorker

    setup_logging()

    ctx["minio"] = get_minio_service()
    ctx["whisper"] = get_whisper_service()
    ctx["transcription_worker"] = TranscriptionWorker(
        store=RecordingStore(async_session_maker),
        storage=ctx["minio"],
        backend=ctx["whisper"],
    )
    ctx["max_tries"] = settings.ARQ_MAX_TRIES
    ctx["retry_base_delay"] = settings.ARQ_RETRY_BASE_DELAY_SEC

    # Ensure MinIO buckets exist
    await ctx["minio"].ensure_buckets_exist()

    logger.info(
        f"Transcription worker started (queue={settings.ARQ_QUEUE_NAME}, "
        f"model={ctx['whisper'].get_model_name()}, {ctx['whisper'].get_model_version()})"
    )


async def shutdown(ctx: dict[str, Any]) -> None:
    """
    Worker shutdown hook.

    ARQ finishes or re-queues in-flight jobs itself; release the DB pool.
    """
    from logbook.core.database import engine

    await engine.dispose()
    logger.info("Transcription worker stopped")


def redis_settings() -> RedisSettings:
    if not settings.ARQ_REDIS_URL:
        return RedisSettings()
    redis = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)
    redis.conn_retries = settings.ARQ_CONN_RETRIES
    return redis


class WorkerSettings:
    """ARQ worker settings."""

    # Redis connection
    redis_settings = redis_settings()

    # Worker configuration
    queue_name = settings.ARQ_QUEUE_NAME
    max_jobs = settings.ARQ_MAX_JOBS
    job_timeout = settings.ARQ_JOB_TIMEOUT_SEC
    keep_result = settings.ARQ_KEEP_RESULT_SEC

    # Retry configuration
    max_tries = settings.ARQ_MAX_TRIES
    retry_jobs = True

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Task functions
    functions = [
        func(transcribe_recording, name="transcribe_recording", max_tries=settings.ARQ_MAX_TRIES),
    ]
