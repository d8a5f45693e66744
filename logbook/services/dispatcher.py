"""Queued-or-inline dispatch of freshly uploaded recordings."""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from logbook.core.exceptions import LogbookError, TranscriptionInProgressError
from logbook.models import TranscriptionStatus
from logbook.services.task_queue import TranscriptionQueue
from logbook.services.transcription_worker import TranscriptionWorker

logger = logging.getLogger(__name__)

DISPATCH_QUEUED = "queued"
DISPATCH_INLINE = "inline"


@dataclass(frozen=True)
class DispatchResult:
    mode: str
    status: TranscriptionStatus
    job_id: Optional[str] = None
    error: Optional[str] = None


class TranscriptionDispatcher:
    """
    Decides per recording whether to enqueue a job or transcribe in-process.

    queue is the connected TranscriptionQueue, or None when the broker is not
    configured or was unreachable at startup.
    """

    def __init__(self, worker: TranscriptionWorker, queue: Optional[TranscriptionQueue]) -> None:
        self.worker = worker
        self.queue = queue

    async def dispatch(
        self,
        entry_id: UUID,
        recording_id: UUID,
        storage_key: str,
        size_bytes: int,
    ) -> DispatchResult:
        """
        Kick off transcription of one stored recording.

        The recording is claimed (status processing) before either path runs.
        Queued: returns as soon as the broker accepted the job.
        Inline: returns after the worker reached a terminal state; worker
        errors are already persisted on the recording and are not re-raised.

        Raises:
            TranscriptionInProgressError: If the recording is already processing
        """
        if not await self.worker.store.claim_for_transcription(recording_id):
            raise TranscriptionInProgressError(f"Transcription already in progress for recording {recording_id}")

        if self.queue is not None:
            try:
                job_id = await self.queue.enqueue_transcription(entry_id, recording_id, storage_key)
                return DispatchResult(mode=DISPATCH_QUEUED, status=TranscriptionStatus.PROCESSING, job_id=job_id)
            except Exception as e:
                logger.warning(
                    f"Enqueue failed for recording {recording_id}, transcribing inline: {e}",
                    exc_info=True,
                )

        logger.info(f"Inline transcription of recording {recording_id} ({size_bytes} bytes)")
        try:
            outcome = await self.worker.run(entry_id, recording_id)
        except LogbookError as e:
            # Persisted by the worker; no queue exists to retry it
            logger.error(f"Inline transcription failed for recording {recording_id}: {e}")
            return DispatchResult(mode=DISPATCH_INLINE, status=TranscriptionStatus.FAILED, error=e.message)
        except Exception as e:
            logger.error(f"Inline transcription of recording {recording_id} failed unexpectedly: {e}", exc_info=True)
            return DispatchResult(
                mode=DISPATCH_INLINE,
                status=TranscriptionStatus.FAILED,
                error=str(e) or e.__class__.__name__,
            )

        return DispatchResult(mode=DISPATCH_INLINE, status=outcome.status)
