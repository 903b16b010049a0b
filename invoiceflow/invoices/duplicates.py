"""Duplicate invoice detection.

Invoices are matched within a workspace on the vendor-issued invoice number
when there is one, otherwise on a fingerprint of vendor, date and total.
When neither key can be built the check is skipped: a possible duplicate is
preferred over blocking a legitimate upload with incomplete data.

The check is a fast path only. Stores back it with unique indexes so two
concurrent uploads of the same document cannot both be inserted.
"""

import logging
from datetime import date

from invoiceflow.invoices.errors import DuplicateInvoice
from invoiceflow.invoices.models import NormalizedInvoice
from invoiceflow.store.base import InvoiceStore

logger = logging.getLogger(__name__)


def format_total(total: float) -> str:
    """Render a total without a trailing '.0' for whole amounts."""
    if float(total).is_integer():
        return str(int(total))
    return repr(float(total))


def compute_fingerprint(vendor_name: str, invoice_date: date, invoice_total: float) -> str:
    """Build the fallback natural key, e.g. 'Beta Corp-2024-01-01-250'."""
    return f"{vendor_name}-{invoice_date.isoformat()}-{format_total(invoice_total)}"


def duplicate_error(
    candidate: NormalizedInvoice, existing_id: str | None = None
) -> DuplicateInvoice:
    """Describe a conflict on whichever key the candidate carries."""
    if candidate.invoice_id is not None:
        return DuplicateInvoice(invoice_id=candidate.invoice_id, existing_id=existing_id)
    return DuplicateInvoice(
        fingerprint=candidate.fingerprint,
        vendor_name=candidate.vendor_name,
        invoice_date=candidate.invoice_date,
        invoice_total=candidate.invoice_total,
        existing_id=existing_id,
    )


class DuplicateDetector:
    """Checks a candidate invoice against the workspace's existing invoices."""

    def __init__(self, store: InvoiceStore) -> None:
        self.store = store

    async def ensure_unique(self, candidate: NormalizedInvoice) -> None:
        """Raise if the workspace already holds this invoice.

        Args:
            candidate: Invoice about to be ingested, or an edited invoice; a match
                with the candidate's own id is not a duplicate

        Raises:
            DuplicateInvoice: If a matching invoice exists
        """
        workspace_id = candidate.workspace_id

        if candidate.invoice_id is not None:
            existing = await self.store.find_by_invoice_id(workspace_id, candidate.invoice_id)
        elif candidate.fingerprint is not None:
            existing = await self.store.find_by_fingerprint(workspace_id, candidate.fingerprint)
        else:
            logger.info(
                f"Skipping duplicate check for invoice {candidate.id}: "
                "no invoice number and incomplete fingerprint"
            )
            return

        if existing is not None and existing.id != candidate.id:
            logger.info(f"Duplicate of invoice {existing.id} in workspace {workspace_id}")
            raise duplicate_error(candidate, existing_id=existing.id)
