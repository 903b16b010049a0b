"""End-to-end tests of the ingestion pipeline without external services.

Real text extraction, normalization, duplicate detection, categorization,
filesystem archive and in-memory stores; only the LLM backend is replaced by a
provider that reads a few labelled lines from the document text.
"""

import re
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

from invoiceflow.extraction.base import ExtractionProvider, ExtractionResult
from invoiceflow.extraction.document import DocumentExtractor
from invoiceflow.ingestion.orchestrator import IngestionOrchestrator
from invoiceflow.invoices.categorizer import create_categorizer
from invoiceflow.invoices.errors import DuplicateInvoice, NotAnInvoice
from invoiceflow.invoices.models import (
    Category,
    InvoiceStatus,
    WorkspaceCategoryConfig,
)
from invoiceflow.invoices.service import InvoiceService, InvoiceUpdate
from invoiceflow.ocr.service import OCRService
from invoiceflow.shared.config import Settings
from invoiceflow.storage.archive import FilesystemDocumentArchive
from invoiceflow.store.memory import InMemoryInvoiceStore, InMemoryWorkspaceStore

pytestmark = pytest.mark.integration

NOW = datetime(2024, 3, 15, 10, 0, tzinfo=UTC)

_LABELS = {
    "Invoice Number": "invoice_id",
    "Vendor": "vendor_name",
    "Bill To": "customer_name",
    "Date": "invoice_date",
    "Due Date": "due_date",
    "Total": "invoice_total",
    "Currency": "currency",
    "Item": "item",
}


class LabelledTextProvider(ExtractionProvider):
    """Reads ``Label: value`` lines; documents without a Total are not invoices."""

    @property
    def provider_name(self) -> str:
        return "labelled-text"

    def is_available(self) -> bool:
        return True

    async def extract_invoice_fields(
        self, text: str, categories: list[str] | None = None
    ) -> ExtractionResult:
        payload: dict = {"line_items": []}
        for line in text.splitlines():
            match = re.match(r"\s*([A-Za-z ]+):\s*(.+)", line)
            if not match or match.group(1).strip() not in _LABELS:
                continue
            field = _LABELS[match.group(1).strip()]
            value = match.group(2).strip()
            if field == "item":
                description, _, amount = value.rpartition(" ")
                payload["line_items"].append({"description": description, "amount": amount})
            else:
                payload[field] = value
        payload["is_invoice"] = "invoice_total" in payload
        return self._payload(payload)


INVOICE_TEXT = """
INVOICE
Invoice Number: INV-2024-001
Vendor: Northwind Cloud Services
Bill To: Contoso Ltd
Date: 2024-03-01
Due Date: 2024-03-10
Item: Cloud hosting March 1,200.00
Item: Support plan 300.00
Total: $1,500.00
Currency: USD
"""

MENU_TEXT = """
Lunch menu
Soup of the day
"""


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(_env_file=None, store_backend="memory", archive_dir=str(tmp_path))


@pytest.fixture
def stores() -> tuple[InMemoryInvoiceStore, InMemoryWorkspaceStore]:
    workspaces = InMemoryWorkspaceStore(
        [
            WorkspaceCategoryConfig(
                id="ws-1",
                categories=[
                    Category(name="Software", tags={"hosting", "saas"}),
                    Category(name="Office", tags={"paper"}),
                ],
            )
        ]
    )
    return InMemoryInvoiceStore(), workspaces


@pytest.fixture
def orchestrator(
    settings: Settings,
    stores: tuple[InMemoryInvoiceStore, InMemoryWorkspaceStore],
    tmp_path: Path,
) -> IngestionOrchestrator:
    invoices, workspaces = stores
    return IngestionOrchestrator(
        extractor=DocumentExtractor(OCRService(settings), LabelledTextProvider(settings)),
        invoice_store=invoices,
        workspace_store=workspaces,
        archive=FilesystemDocumentArchive(tmp_path),
        categorizer=create_categorizer(settings),
        settings=settings,
        clock=lambda: NOW,
    )


@pytest.mark.asyncio
async def test_text_invoice_ingested_end_to_end(
    orchestrator: IngestionOrchestrator,
    stores: tuple[InMemoryInvoiceStore, InMemoryWorkspaceStore],
    tmp_path: Path,
) -> None:
    invoice = await orchestrator.ingest(
        "ws-1", "user-1", INVOICE_TEXT.encode(), "northwind.txt", "text/plain"
    )

    assert invoice.invoice_id == "INV-2024-001"
    assert invoice.vendor_name == "Northwind Cloud Services"
    assert invoice.customer_name == "Contoso Ltd"
    assert invoice.invoice_total == 1500.0
    assert [item.amount for item in invoice.line_items] == [1200.0, 300.0]
    assert invoice.category == "Software"
    # Due date already passed at ingestion time
    assert invoice.status == InvoiceStatus.OVERDUE

    archived = Path(invoice.storage_path)
    assert archived.parent == tmp_path
    assert archived.name == invoice.file_name
    assert archived.read_bytes() == INVOICE_TEXT.encode()

    invoices, _ = stores
    assert [i.id for i in await invoices.list_for_workspace("ws-1")] == [invoice.id]


@pytest.mark.asyncio
async def test_reupload_is_rejected_and_leaves_no_extra_file(
    orchestrator: IngestionOrchestrator, tmp_path: Path
) -> None:
    await orchestrator.ingest("ws-1", "user-1", INVOICE_TEXT.encode(), "a.txt", "text/plain")

    with pytest.raises(DuplicateInvoice):
        await orchestrator.ingest("ws-1", "user-2", INVOICE_TEXT.encode(), "b.txt", "text/plain")

    assert len(list(tmp_path.iterdir())) == 1


@pytest.mark.asyncio
async def test_non_invoice_is_rejected(
    orchestrator: IngestionOrchestrator, tmp_path: Path
) -> None:
    with pytest.raises(NotAnInvoice):
        await orchestrator.ingest("ws-1", "user-1", MENU_TEXT.encode(), "menu.txt", "text/plain")

    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_ingested_invoice_is_paid_edited_and_reported(
    orchestrator: IngestionOrchestrator,
    stores: tuple[InMemoryInvoiceStore, InMemoryWorkspaceStore],
) -> None:
    invoices, workspaces = stores
    service = InvoiceService(invoices, workspaces, clock=lambda: NOW)
    invoice = await orchestrator.ingest(
        "ws-1", "user-1", INVOICE_TEXT.encode(), "northwind.txt", "text/plain"
    )

    await service.mark_paid("ws-1", invoice.id)
    edited = await service.edit_invoice(
        "ws-1", invoice.id, "user-1", InvoiceUpdate(category="Office")
    )
    report = await service.analytics("ws-1", start_date=date(2024, 3, 1))

    assert edited.status == InvoiceStatus.PAID
    assert edited.payment_date == date(2024, 3, 15)
    assert report.kpis.total_spent == 1500.0
    assert report.kpis.top_category == "Office"
    # Only uncategorized invoices produce correction logs
    assert invoices.corrections == []
