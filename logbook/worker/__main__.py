"""ARQ worker entry point."""

import sys

from arq import run_worker

from logbook.core.config import settings
from logbook.worker.arq_config import WorkerSettings


def main() -> None:
    """Run ARQ worker."""
    if not settings.queue_configured:
        sys.exit("ARQ_REDIS_URL is not set; the transcription worker needs a Redis broker")

    # ARQ type stubs expect WorkerSettingsBase but accept subclasses at runtime
    run_worker(WorkerSettings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
