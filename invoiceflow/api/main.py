"""FastAPI application for invoice ingestion and review.

- Health and readiness checks for Kubernetes
- Synchronous and queued invoice upload
- Invoice listing, payment marking and manual edits
- Dashboard and analytics aggregates
- Typed error responses ``{"error", "detail", "retryable"}``
- Prometheus metrics for monitoring

Workspace and user identity arrive in the ``X-Workspace-Id`` and ``X-User-Id``
headers, set by the authenticating gateway in front of this service.

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime

from arq import create_pool
from arq.connections import ArqRedis
from fastapi import (
    Depends,
    FastAPI,
    File,
    Header,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from invoiceflow.api import metrics
from invoiceflow.ingestion.orchestrator import IngestionOrchestrator, build_orchestrator
from invoiceflow.invoices.errors import (
    ArchivalFailed,
    DocumentUnreadable,
    DuplicateInvoice,
    EmptyUpload,
    ExtractionFailed,
    ExtractionTimedOut,
    IngestionError,
    InvalidCategory,
    InvoiceNotFound,
    NotAnInvoice,
    PersistenceFailed,
    WorkspaceNotFound,
)
from invoiceflow.invoices.models import NormalizedInvoice
from invoiceflow.invoices.service import (
    AnalyticsReport,
    DashboardStats,
    InvoiceService,
    InvoiceUpdate,
)
from invoiceflow.queue.tasks import JOB_TTL_SECONDS, JobResult, get_redis_settings, job_key
from invoiceflow.shared.config import get_settings
from invoiceflow.store.base import StoreError
from invoiceflow.store.factory import Stores, create_stores

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

INGESTION_STATUS_CODES: dict[type[IngestionError], int] = {
    EmptyUpload: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExtractionFailed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotAnInvoice: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DocumentUnreadable: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExtractionTimedOut: status.HTTP_504_GATEWAY_TIMEOUT,
    DuplicateInvoice: status.HTTP_409_CONFLICT,
    WorkspaceNotFound: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ArchivalFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistenceFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Shared arq connection pool, created on first use."""
    global _arq_pool
    if _arq_pool is None:
        _arq_pool = await create_pool(get_redis_settings(settings))
    return _arq_pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Connect stores and wire the pipeline for the lifetime of the app."""
    global _arq_pool
    stores = create_stores(settings)
    await stores.open()
    app.state.stores = stores
    app.state.orchestrator = build_orchestrator(settings, stores)
    app.state.invoice_service = InvoiceService(stores.invoices, stores.workspaces)
    logger.info(f"{settings.service_name} {settings.service_version} started")

    yield

    await app.state.orchestrator.aclose()
    stores.close()
    if _arq_pool is not None:
        await _arq_pool.aclose()
        _arq_pool = None


app = FastAPI(
    title="InvoiceFlow",
    description="Invoice extraction and classification API",
    version=settings.service_version,
    lifespan=lifespan,
)


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    orchestrator: IngestionOrchestrator = request.app.state.orchestrator
    return orchestrator


def get_invoice_service(request: Request) -> InvoiceService:
    service: InvoiceService = request.app.state.invoice_service
    return service


def get_stores(request: Request) -> Stores:
    stores: Stores = request.app.state.stores
    return stores


def _error_response(status_code: int, code: str, detail: str, retryable: bool) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "detail": detail, "retryable": retryable},
    )


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    status_code = INGESTION_STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _error_response(status_code, exc.code, str(exc), exc.retryable)


@app.exception_handler(InvoiceNotFound)
async def invoice_not_found_handler(request: Request, exc: InvoiceNotFound) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, exc.code, str(exc), False)


@app.exception_handler(InvalidCategory)
async def invalid_category_handler(request: Request, exc: InvalidCategory) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, exc.code, str(exc), False)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", str(exc), True)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Route template keeps invoice and job ids out of the labels
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    archive: bool
    store: bool


class JobAccepted(BaseModel):
    """Queued upload response."""

    job_id: str
    status: str


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness checks."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
async def readiness_check(
    response: Response,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),  # noqa: B008
    stores: Stores = Depends(get_stores),  # noqa: B008
) -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness checks.

    Returns 503 until both the document archive and the invoice store respond.
    """
    archive_ready = await orchestrator.archive.is_ready()
    store_ready = await stores.is_ready()
    ready = archive_ready and store_ready
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=ready, archive=archive_ready, store=store_ready)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


async def _read_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")
    content = await file.read()
    metrics.invoice_upload_size_bytes.observe(len(content))
    return content


@app.post(
    "/api/v1/invoices/upload",
    response_model=NormalizedInvoice,
    status_code=status.HTTP_201_CREATED,
    tags=["Invoices"],
)
async def upload_invoice(
    file: UploadFile = File(..., description="Invoice document (PDF, image or text)"),  # noqa: B008
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    user_id: str = Header(..., alias="X-User-Id"),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> NormalizedInvoice:
    """Upload an invoice and run the ingestion pipeline synchronously.

    ```bash
    curl -X POST "http://localhost:8000/api/v1/invoices/upload" \\
      -H "X-Workspace-Id: ws-1" -H "X-User-Id: user-1" \\
      -F "file=@invoice.pdf"
    ```

    Returns 201 with the stored invoice. Failures use the typed error body:
    422 for unusable documents, 409 for duplicates, 504 when extraction
    times out and 503 when archiving or persisting fails.
    """
    content = await _read_upload(file)
    metrics.invoices_uploaded_total.labels(mode="sync").inc()
    return await orchestrator.ingest(
        workspace_id, user_id, content, file.filename or "", file.content_type
    )


@app.post(
    "/api/v1/invoices/upload/async",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Invoices"],
)
async def upload_invoice_async(
    file: UploadFile = File(..., description="Invoice document (PDF, image or text)"),  # noqa: B008
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    user_id: str = Header(..., alias="X-User-Id"),
) -> JobAccepted:
    """Queue an invoice for background ingestion.

    Poll ``GET /api/v1/jobs/{job_id}`` for the outcome.
    """
    content = await _read_upload(file)
    if not content:
        raise EmptyUpload(f"Uploaded file '{file.filename}' is empty")

    job_id = uuid.uuid4().hex
    file_name = file.filename or ""
    pool = await get_arq_pool()

    pending = JobResult(
        job_id=job_id,
        status="pending",
        workspace_id=workspace_id,
        file_name=file_name,
        created_at=datetime.now(UTC).isoformat(),
    )
    await pool.set(job_key(job_id), pending.model_dump_json(), ex=JOB_TTL_SECONDS)
    await pool.enqueue_job(
        "ingest_document",
        job_id,
        workspace_id,
        user_id,
        content,
        file_name,
        file.content_type,
        _job_id=job_id,
    )
    metrics.invoices_uploaded_total.labels(mode="async").inc()
    logger.info(f"Queued ingestion job {job_id} for workspace {workspace_id}")

    return JobAccepted(job_id=job_id, status="pending")


@app.get("/api/v1/jobs/{job_id}", response_model=JobResult, tags=["Invoices"])
async def get_job(
    job_id: str,
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
) -> JobResult:
    """Status of a queued upload."""
    pool = await get_arq_pool()
    raw = await pool.get(job_key(job_id))
    if raw is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    result = JobResult.model_validate_json(raw)
    if result.workspace_id != workspace_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return result


@app.get("/api/v1/invoices", response_model=list[NormalizedInvoice], tags=["Invoices"])
async def list_invoices(
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    service: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> list[NormalizedInvoice]:
    """All invoices of the workspace, newest first, with display status."""
    return await service.list_invoices(workspace_id)


@app.post(
    "/api/v1/invoices/{invoice_id}/mark-paid",
    response_model=NormalizedInvoice,
    tags=["Invoices"],
)
async def mark_invoice_paid(
    invoice_id: str,
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    service: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> NormalizedInvoice:
    return await service.mark_paid(workspace_id, invoice_id)


@app.patch("/api/v1/invoices/{invoice_id}", response_model=NormalizedInvoice, tags=["Invoices"])
async def edit_invoice(
    invoice_id: str,
    changes: InvoiceUpdate,
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    user_id: str = Header(..., alias="X-User-Id"),
    service: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> NormalizedInvoice:
    """Edit invoice fields; a category must exist in the workspace."""
    return await service.edit_invoice(workspace_id, invoice_id, user_id, changes)


@app.get("/api/v1/dashboard/stats", response_model=DashboardStats, tags=["Reports"])
async def dashboard_stats(
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    service: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> DashboardStats:
    return await service.dashboard_stats(workspace_id)


@app.get("/api/v1/analytics", response_model=AnalyticsReport, tags=["Reports"])
async def analytics(
    workspace_id: str = Header(..., alias="X-Workspace-Id"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    category: str | None = Query(None),
    service: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> AnalyticsReport:
    """Spending analytics, optionally filtered by invoice date range and category."""
    return await service.analytics(workspace_id, start_date, end_date, category)
