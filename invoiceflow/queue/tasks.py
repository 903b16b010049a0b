"""Async task definitions for background invoice ingestion.

Uses arq (async Redis queue). The API enqueues ``ingest_document`` with the
uploaded bytes; the worker runs the same ingestion pipeline as the synchronous
upload endpoint and records a ``JobResult`` in Redis under ``job:<id>``.

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import logging
from datetime import UTC, datetime
from typing import Any

from arq.connections import RedisSettings
from pydantic import BaseModel

from invoiceflow.ingestion.orchestrator import IngestionOrchestrator, build_orchestrator
from invoiceflow.invoices.errors import IngestionError
from invoiceflow.shared.config import Settings, get_settings
from invoiceflow.store.factory import create_stores

logger = logging.getLogger(__name__)

JOB_TTL_SECONDS = 86400  # 24h


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class JobResult(BaseModel):
    """State of a background ingestion job.

    Attributes:
        job_id: Unique job identifier
        status: pending, processing, completed or failed
        workspace_id: Workspace the document was uploaded to
        file_name: Original file name
        invoice: Persisted invoice document (if completed)
        error: Error code (if failed)
        detail: Error message (if failed)
        retryable: Whether re-submitting the upload can succeed (if failed)
        created_at: Job creation timestamp
        completed_at: Job completion timestamp
    """

    job_id: str
    status: str
    workspace_id: str
    file_name: str
    invoice: dict[str, Any] | None = None
    error: str | None = None
    detail: str | None = None
    retryable: bool | None = None
    created_at: str
    completed_at: str | None = None


async def ingest_document(
    ctx: dict[str, Any],
    job_id: str,
    workspace_id: str,
    uploader_id: str | None,
    file_content: bytes,
    file_name: str,
    content_type: str | None = None,
) -> dict[str, Any]:
    """Ingest one uploaded document.

    Args:
        ctx: arq context (contains redis connection and the orchestrator)
        job_id: Unique job identifier
        workspace_id: Owning workspace
        uploader_id: Uploading user
        file_content: Raw file bytes
        file_name: Original filename
        content_type: MIME type

    Returns:
        JobResult as dict
    """
    logger.info(f"Processing ingestion job {job_id} for workspace {workspace_id}")

    orchestrator: IngestionOrchestrator = ctx["orchestrator"]
    redis = ctx["redis"]

    result = JobResult(
        job_id=job_id,
        status="processing",
        workspace_id=workspace_id,
        file_name=file_name,
        created_at=_now(),
    )
    await redis.set(job_key(job_id), result.model_dump_json(), ex=JOB_TTL_SECONDS)

    try:
        invoice = await orchestrator.ingest(
            workspace_id, uploader_id, file_content, file_name, content_type
        )
        result.status = "completed"
        result.invoice = invoice.to_document()
    except IngestionError as e:
        result.status = "failed"
        result.error = e.code
        result.detail = str(e)
        result.retryable = e.retryable
    except Exception as e:
        logger.exception(f"Job {job_id} failed with error: {e}")
        result.status = "failed"
        result.error = "internal_error"
        result.detail = str(e)
        result.retryable = False

    result.completed_at = _now()
    await redis.set(job_key(job_id), result.model_dump_json(), ex=JOB_TTL_SECONDS)
    logger.info(f"Job {job_id} completed with status: {result.status}")

    return result.model_dump()


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup hook: connect the stores and build the pipeline once."""
    logger.info("Initializing worker services...")
    settings = get_settings()
    stores = create_stores(settings)
    await stores.open()
    ctx["settings"] = settings
    ctx["stores"] = stores
    ctx["orchestrator"] = build_orchestrator(settings, stores)
    logger.info("Worker services initialized")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown hook: release extraction and store connections."""
    logger.info("Worker shutting down...")
    orchestrator = ctx.get("orchestrator")
    if orchestrator is not None:
        await orchestrator.aclose()
    stores = ctx.get("stores")
    if stores is not None:
        stores.close()


def get_redis_settings(settings: Settings | None = None) -> RedisSettings:
    """arq Redis settings from ``Settings.redis_url``."""
    settings = settings or get_settings()
    return RedisSettings.from_dsn(settings.redis_url)


class WorkerSettings:
    """arq worker settings.

    Run with ``arq invoiceflow.queue.tasks.WorkerSettings``; queue size and
    timeouts are applied from configuration by ``invoiceflow.queue.worker``.
    """

    functions = [ingest_document]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = get_redis_settings()
    max_jobs = 10
    job_timeout = 300
    max_tries = 1
