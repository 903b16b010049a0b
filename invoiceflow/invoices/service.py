"""Invoice read and edit operations for a workspace.

Everything returned here carries the display status, so a stored ``pending``
invoice whose due date has passed is reported as ``overdue``.
"""

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, date, datetime

from pydantic import Field

from invoiceflow.invoices.duplicates import (
    DuplicateDetector,
    compute_fingerprint,
    duplicate_error,
)
from invoiceflow.invoices.errors import InvalidCategory, InvoiceNotFound
from invoiceflow.invoices.models import (
    NOT_AVAILABLE,
    UNCATEGORIZED,
    CorrectionLog,
    DocumentModel,
    InvoiceStatus,
    LineItem,
    NormalizedInvoice,
)
from invoiceflow.invoices.status import display_status
from invoiceflow.store.base import DuplicateKeyViolation, InvoiceStore, WorkspaceStore

logger = logging.getLogger(__name__)

RECENT_INVOICES_LIMIT = 5

# Fields that cannot be cleared; an explicit null leaves them unchanged
_REQUIRED_FIELDS = {
    "vendor_name",
    "customer_name",
    "invoice_date",
    "invoice_total",
    "currency",
    "line_items",
    "category",
    "status",
}


class InvoiceUpdate(DocumentModel):
    """Editable invoice fields. Unset fields are left as they are."""

    invoice_id: str | None = None
    vendor_name: str | None = None
    customer_name: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    invoice_total: float | None = Field(default=None, ge=0)
    sub_total: float | None = Field(default=None, ge=0)
    total_tax: float | None = Field(default=None, ge=0)
    total_discount: float | None = Field(default=None, ge=0)
    amount_paid: float | None = Field(default=None, ge=0)
    currency: str | None = None
    line_items: list[LineItem] | None = None
    category: str | None = None
    status: InvoiceStatus | None = None
    payment_date: date | None = None


class DashboardStats(DocumentModel):
    total_count: int
    total_amount_paid: float
    overdue_count: int
    recent_invoices: list[NormalizedInvoice]


class AnalyticsKpis(DocumentModel):
    total_spent: float
    top_category: str
    overdue_count: int


class CategorySpending(DocumentModel):
    name: str
    value: float


class MonthlySpending(DocumentModel):
    month: str  # YYYY-MM
    total: float


class AnalyticsReport(DocumentModel):
    kpis: AnalyticsKpis
    spending_by_category: list[CategorySpending]
    spending_by_month: list[MonthlySpending]


class InvoiceService:
    """Workspace-scoped invoice queries, payment marking and manual edits."""

    def __init__(
        self,
        invoice_store: InvoiceStore,
        workspace_store: WorkspaceStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.invoice_store = invoice_store
        self.workspace_store = workspace_store
        self.clock = clock
        self.duplicates = DuplicateDetector(invoice_store)

    def _for_display(self, invoice: NormalizedInvoice, now: datetime) -> NormalizedInvoice:
        return invoice.model_copy(update={"status": display_status(invoice, now)})

    async def _get(self, workspace_id: str, invoice_id: str) -> NormalizedInvoice:
        invoice = await self.invoice_store.get(workspace_id, invoice_id)
        if invoice is None:
            raise InvoiceNotFound(workspace_id, invoice_id)
        return invoice

    async def list_invoices(self, workspace_id: str) -> list[NormalizedInvoice]:
        """All invoices of a workspace, newest upload first."""
        now = self.clock()
        invoices = await self.invoice_store.list_for_workspace(workspace_id)
        return [self._for_display(invoice, now) for invoice in invoices]

    async def mark_paid(self, workspace_id: str, invoice_id: str) -> NormalizedInvoice:
        """Set an invoice to paid as of today.

        Raises:
            InvoiceNotFound: If the workspace holds no such invoice
        """
        now = self.clock()
        invoice = await self._get(workspace_id, invoice_id)
        invoice.status = InvoiceStatus.PAID
        invoice.payment_date = now.date()
        await self.invoice_store.replace(invoice)
        logger.info(f"Invoice {invoice_id} in workspace {workspace_id} marked as paid")
        return invoice

    async def edit_invoice(
        self,
        workspace_id: str,
        invoice_id: str,
        user_id: str,
        changes: InvoiceUpdate,
    ) -> NormalizedInvoice:
        """Apply a manual edit.

        The first time an uncategorized invoice is given a real category, a
        correction log entry records the vendor and line descriptions so that
        the assignment can be learned from later.

        Args:
            workspace_id: Owning workspace
            invoice_id: Invoice to edit
            user_id: Editing user
            changes: Fields to change

        Returns:
            The updated invoice with its display status

        Raises:
            InvoiceNotFound: If the workspace holds no such invoice
            InvalidCategory: If the category is not configured for the workspace
            DuplicateInvoice: If the new invoice number or fingerprint belongs to
                another invoice of the workspace
        """
        now = self.clock()
        existing = await self._get(workspace_id, invoice_id)

        updates = changes.model_dump(exclude_unset=True)
        for name in _REQUIRED_FIELDS & updates.keys():
            if updates[name] is None:
                del updates[name]

        category = updates.get("category")
        if category is not None and category != UNCATEGORIZED:
            config = await self.workspace_store.get_categories(workspace_id)
            if config is None or category not in config.category_names:
                raise InvalidCategory(
                    f"'{category}' is not a category of workspace '{workspace_id}'"
                )

        # Re-validate the merged record so invariants still hold
        updated = NormalizedInvoice.model_validate({**existing.model_dump(), **updates})
        updated.fingerprint = self._refresh_fingerprint(existing, updated)

        if (updated.invoice_id, updated.fingerprint) != (existing.invoice_id, existing.fingerprint):
            await self.duplicates.ensure_unique(updated)

        try:
            await self.invoice_store.replace(updated)
        except DuplicateKeyViolation as e:
            raise duplicate_error(updated) from e

        if (
            category is not None
            and category != UNCATEGORIZED
            and existing.category == UNCATEGORIZED
        ):
            await self.invoice_store.add_correction(
                CorrectionLog(
                    id=uuid.uuid4().hex,
                    workspace_id=workspace_id,
                    user_id=user_id,
                    source_invoice_id=existing.id,
                    text_fragment=" ".join(
                        item.description for item in existing.line_items
                    ).lower(),
                    vendor_name=existing.vendor_name,
                    assigned_category=category,
                    created_at=now,
                )
            )
            logger.info(f"Correction logged for invoice {invoice_id}: {category}")

        return self._for_display(updated, now)

    @staticmethod
    def _refresh_fingerprint(
        existing: NormalizedInvoice, updated: NormalizedInvoice
    ) -> str | None:
        if updated.invoice_id is not None:
            return None
        if existing.fingerprint is None or updated.vendor_name == NOT_AVAILABLE:
            return existing.fingerprint
        return compute_fingerprint(
            updated.vendor_name, updated.invoice_date, updated.invoice_total
        )

    async def dashboard_stats(self, workspace_id: str) -> DashboardStats:
        now = self.clock()
        invoices = [
            self._for_display(invoice, now)
            for invoice in await self.invoice_store.list_for_workspace(workspace_id)
        ]
        return DashboardStats(
            total_count=len(invoices),
            total_amount_paid=sum(
                invoice.invoice_total
                for invoice in invoices
                if invoice.status == InvoiceStatus.PAID
            ),
            overdue_count=sum(1 for invoice in invoices if invoice.status == InvoiceStatus.OVERDUE),
            recent_invoices=invoices[:RECENT_INVOICES_LIMIT],
        )

    async def analytics(
        self,
        workspace_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        category: str | None = None,
    ) -> AnalyticsReport:
        """Spending analytics over an optional date range and category.

        Args:
            workspace_id: Workspace to report on
            start_date: First invoice date included
            end_date: Last invoice date included
            category: Only invoices of this category

        Returns:
            AnalyticsReport; ``totalSpent`` sums paid invoices only
        """
        now = self.clock()
        invoices = [
            self._for_display(invoice, now)
            for invoice in await self.invoice_store.list_for_workspace(workspace_id)
            if (start_date is None or invoice.invoice_date >= start_date)
            and (end_date is None or invoice.invoice_date <= end_date)
            and (category is None or invoice.category == category)
        ]

        by_category: dict[str, float] = defaultdict(float)
        by_month: dict[str, float] = defaultdict(float)
        total_spent = 0.0
        overdue_count = 0
        for invoice in invoices:
            if invoice.status == InvoiceStatus.PAID:
                total_spent += invoice.invoice_total
            elif invoice.status == InvoiceStatus.OVERDUE:
                overdue_count += 1
            by_category[invoice.category] += invoice.invoice_total
            by_month[invoice.invoice_date.strftime("%Y-%m")] += invoice.invoice_total

        top_category = NOT_AVAILABLE
        if by_category:
            top_category = max(by_category, key=by_category.__getitem__)

        return AnalyticsReport(
            kpis=AnalyticsKpis(
                total_spent=total_spent,
                top_category=top_category,
                overdue_count=overdue_count,
            ),
            spending_by_category=[
                CategorySpending(name=name, value=value) for name, value in by_category.items()
            ],
            spending_by_month=[
                MonthlySpending(month=month, total=by_month[month]) for month in sorted(by_month)
            ],
        )
