"""Ingestion orchestrator: one uploaded document in, one persisted invoice out.

Steps run in a fixed order and the first failure ends the run with a typed
``IngestionError``:

1. Reject empty uploads
2. Load the workspace category taxonomy
3. Extract a raw payload (bounded by ``extraction_timeout_seconds``)
4. Reject non-invoices and payloads without usable fields
5. Normalize
6. Duplicate check
7. Status resolution
8. Categorization
9. Archive the original under a generated name
10. Persist, removing the archived original again if persistence fails

Extraction is attempted exactly once. Whether to re-submit is up to the caller,
guided by ``IngestionError.retryable``.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from invoiceflow.extraction.base import ExtractionResult
from invoiceflow.extraction.document import DocumentExtractor
from invoiceflow.extraction.factory import create_document_extractor
from invoiceflow.extraction.schema import has_usable_fields
from invoiceflow.ingestion import metrics
from invoiceflow.invoices.categorizer import CategorizationStrategy, create_categorizer
from invoiceflow.invoices.duplicates import DuplicateDetector, duplicate_error
from invoiceflow.invoices.errors import (
    ArchivalFailed,
    DocumentUnreadable,
    EmptyUpload,
    ExtractionFailed,
    ExtractionTimedOut,
    IngestionError,
    NotAnInvoice,
    PersistenceFailed,
    WorkspaceNotFound,
)
from invoiceflow.invoices.models import (
    UNCATEGORIZED,
    NormalizedInvoice,
    RawExtraction,
    WorkspaceCategoryConfig,
)
from invoiceflow.invoices.normalizer import normalize_extraction
from invoiceflow.invoices.status import resolve_status
from invoiceflow.shared.config import Settings
from invoiceflow.storage.archive import (
    DocumentArchive,
    create_document_archive,
    generate_object_name,
)
from invoiceflow.store.base import (
    DuplicateKeyViolation,
    InvoiceStore,
    StoreError,
    WorkspaceStore,
)
from invoiceflow.store.factory import Stores

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class IngestionOrchestrator:
    """Runs the ingestion pipeline against injected collaborators."""

    def __init__(
        self,
        extractor: DocumentExtractor,
        invoice_store: InvoiceStore,
        workspace_store: WorkspaceStore,
        archive: DocumentArchive,
        categorizer: CategorizationStrategy,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self.extractor = extractor
        self.invoice_store = invoice_store
        self.workspace_store = workspace_store
        self.archive = archive
        self.categorizer = categorizer
        self.settings = settings
        self.clock = clock
        self.duplicates = DuplicateDetector(invoice_store)

    async def ingest(
        self,
        workspace_id: str,
        uploader_id: str | None,
        file_bytes: bytes,
        file_name: str,
        content_type: str | None = None,
    ) -> NormalizedInvoice:
        """Turn one uploaded document into a persisted invoice.

        Args:
            workspace_id: Owning workspace, from the caller's auth context
            uploader_id: Uploading user, from the caller's auth context
            file_bytes: Raw document bytes
            file_name: User-supplied file name, used for type detection only
            content_type: MIME type reported by the client, if any

        Returns:
            The persisted NormalizedInvoice

        Raises:
            IngestionError: One of its subclasses, describing the failed step
        """
        start = time.perf_counter()
        try:
            invoice = await self._run(
                workspace_id, uploader_id, file_bytes, file_name, content_type
            )
        except IngestionError as e:
            metrics.ingestions_total.labels(outcome=e.code).inc()
            logger.warning(f"Ingestion of {file_name} for workspace {workspace_id} failed: {e}")
            raise
        finally:
            metrics.ingestion_duration_seconds.observe(time.perf_counter() - start)

        metrics.ingestions_total.labels(outcome="ingested").inc()
        logger.info(
            f"Ingested invoice {invoice.id} for workspace {workspace_id} "
            f"(status={invoice.status.value}, category={invoice.category})"
        )
        return invoice

    async def _run(
        self,
        workspace_id: str,
        uploader_id: str | None,
        file_bytes: bytes,
        file_name: str,
        content_type: str | None,
    ) -> NormalizedInvoice:
        if not file_bytes:
            raise EmptyUpload(f"Uploaded file '{file_name}' is empty")

        try:
            config = await self.workspace_store.get_categories(workspace_id)
        except StoreError as e:
            raise PersistenceFailed(f"Could not load workspace {workspace_id}: {e}") from e
        if config is None:
            raise WorkspaceNotFound(workspace_id)

        raw = await self._extract(file_bytes, file_name, content_type, config)
        now = self.clock()

        invoice = normalize_extraction(raw, workspace_id, uploader_id, self.settings, now).invoice

        try:
            await self.duplicates.ensure_unique(invoice)
        except StoreError as e:
            raise PersistenceFailed(f"Duplicate check failed for invoice {invoice.id}: {e}") from e

        resolution = resolve_status(invoice, raw, self.settings, now)
        invoice.status = resolution.status
        invoice.payment_date = resolution.payment_date
        logger.debug(f"Invoice {invoice.id} status {resolution.status.value} ({resolution.reason})")

        invoice.category = self.categorizer.categorize(invoice, config, raw)
        metrics.invoices_categorized_total.labels(
            strategy=self.categorizer.strategy_name,
            matched=str(invoice.category != UNCATEGORIZED).lower(),
        ).inc()

        object_name = generate_object_name(file_name)
        try:
            storage_path = await self.archive.archive(file_bytes, object_name, content_type)
        except Exception as e:
            raise ArchivalFailed(f"Could not archive '{file_name}': {e}") from e

        invoice.file_name = object_name
        invoice.storage_path = storage_path

        try:
            return await self.invoice_store.insert(invoice)
        except DuplicateKeyViolation as e:
            await self._discard(object_name)
            raise duplicate_error(invoice) from e
        except Exception as e:
            await self._discard(object_name)
            raise PersistenceFailed(f"Could not store invoice {invoice.id}: {e}") from e

    async def _extract(
        self,
        file_bytes: bytes,
        file_name: str,
        content_type: str | None,
        config: WorkspaceCategoryConfig,
    ) -> RawExtraction:
        categories = config.category_names if self.categorizer.uses_backend_choice else None
        provider = self.extractor.provider_name
        start = time.perf_counter()

        try:
            result: ExtractionResult = await asyncio.wait_for(
                self.extractor.extract(file_bytes, file_name, content_type, categories),
                timeout=self.settings.extraction_timeout_seconds,
            )
        except TimeoutError as e:
            metrics.extraction_requests_total.labels(provider=provider, status="timeout").inc()
            raise ExtractionTimedOut(
                f"Extraction did not finish within {self.settings.extraction_timeout_seconds}s"
            ) from e
        except Exception as e:
            metrics.extraction_requests_total.labels(provider=provider, status="failed").inc()
            raise ExtractionFailed(f"Extraction failed: {e}") from e
        finally:
            metrics.extraction_duration_seconds.labels(provider=provider).observe(
                time.perf_counter() - start
            )

        if result.unreadable:
            metrics.extraction_requests_total.labels(provider=provider, status="unreadable").inc()
            raise DocumentUnreadable(f"Could not read '{file_name}': {result.error}")
        if not result.success:
            metrics.extraction_requests_total.labels(provider=provider, status="failed").inc()
            raise ExtractionFailed(result.error or "Extraction backend reported a failure")
        metrics.extraction_requests_total.labels(provider=provider, status="success").inc()

        raw = result.raw_extraction
        if raw is not None and raw.get("is_invoice") is False:
            raise NotAnInvoice(f"'{file_name}' is not an invoice")
        if raw is None or not has_usable_fields(raw):
            raise DocumentUnreadable(
                result.error or f"No invoice fields could be read from '{file_name}'"
            )
        return raw

    async def aclose(self) -> None:
        """Release the extraction backend's connections."""
        await self.extractor.aclose()

    async def _discard(self, object_name: str) -> None:
        try:
            await self.archive.discard(object_name)
        except Exception as e:
            # The original failure is what the caller must see
            logger.error(f"Could not remove archived object {object_name}: {e}")


def build_orchestrator(
    settings: Settings, stores: Stores, extractor: DocumentExtractor | None = None
) -> IngestionOrchestrator:
    """Wire an orchestrator from configuration.

    Args:
        settings: Application settings
        stores: Invoice and workspace stores
        extractor: Optional extractor (defaults to the configured provider)

    Returns:
        Ready-to-use IngestionOrchestrator
    """
    if extractor is None:
        extractor = create_document_extractor(settings)

    return IngestionOrchestrator(
        extractor=extractor,
        invoice_store=stores.invoices,
        workspace_store=stores.workspaces,
        archive=create_document_archive(settings),
        categorizer=create_categorizer(settings),
        settings=settings,
    )
