"""arq worker runner.

Run with: python -m invoiceflow.queue.worker
Or: arq invoiceflow.queue.tasks.WorkerSettings
"""

import logging

from arq import run_worker

from invoiceflow.queue.tasks import WorkerSettings, get_redis_settings
from invoiceflow.shared.config import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the arq worker."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"Starting worker with Redis: {settings.redis_url}")
    logger.info(f"Max jobs: {settings.queue_max_jobs}")
    logger.info(f"Job timeout: {settings.queue_job_timeout}s")

    WorkerSettings.redis_settings = get_redis_settings(settings)
    WorkerSettings.max_jobs = settings.queue_max_jobs
    WorkerSettings.job_timeout = settings.queue_job_timeout

    run_worker(WorkerSettings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
