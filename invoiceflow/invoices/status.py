"""Invoice status resolution.

Rules are evaluated in priority order and the first match wins:

1. Age: invoices dated before the paid-age threshold are assumed settled.
2. Payment evidence in the extracted payload (receipt, payment method,
   zero balance, amount paid covering the total).
3. Prepaid vendors (marketplaces that only issue invoices for paid orders).
4. Due date: past due is ``overdue``, anything else ``pending``.

``display_status`` applies rule 4 again at read time so that stored
``pending`` invoices surface as ``overdue`` once their due date passes.
"""

import logging
from datetime import date, datetime, timedelta

from pydantic import BaseModel

from invoiceflow.invoices.models import InvoiceStatus, NormalizedInvoice, RawExtraction
from invoiceflow.invoices.normalizer import normalize_amount, normalize_date, normalize_text
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)

RECEIPT_DOCUMENT_TYPES = {"receipt", "payment receipt", "paid invoice"}


class StatusResolution(BaseModel):
    """Outcome of status resolution.

    Attributes:
        status: Resolved lifecycle label
        payment_date: Set only when status is paid
        reason: Rule that decided the status (age, payment_evidence, prepaid_vendor,
            past_due, not_due)
    """

    status: InvoiceStatus
    payment_date: date | None = None
    reason: str


def is_past_due(due_date: date | None, now: datetime) -> bool:
    """Strict comparison shared by ingestion and read-time status."""
    return due_date is not None and due_date < now.date()


def display_status(invoice: NormalizedInvoice, now: datetime) -> InvoiceStatus:
    """Status as reported to readers; never mutates the stored record."""
    if invoice.status == InvoiceStatus.PENDING and is_past_due(invoice.due_date, now):
        return InvoiceStatus.OVERDUE
    return invoice.status


def _has_payment_evidence(invoice: NormalizedInvoice, raw: RawExtraction) -> bool:
    if raw.get("is_paid") is True:
        return True

    document_type = normalize_text(raw.get("document_type"))
    if document_type and document_type.lower() in RECEIPT_DOCUMENT_TYPES:
        return True

    if normalize_text(raw.get("payment_method")):
        return True

    amount_due = normalize_amount(raw.get("amount_due"))
    if amount_due == 0 and invoice.invoice_total > 0:
        return True

    paid = invoice.amount_paid
    return paid is not None and paid > 0 and paid >= invoice.invoice_total


def _is_prepaid_vendor(vendor_name: str, prepaid_vendors: list[str]) -> bool:
    vendor = vendor_name.lower()
    fragments = [fragment.strip().lower() for fragment in prepaid_vendors]
    return any(fragment in vendor for fragment in fragments if fragment)


def resolve_status(
    invoice: NormalizedInvoice,
    raw: RawExtraction,
    settings: Settings,
    now: datetime,
) -> StatusResolution:
    """Resolve the ingestion-time status of a normalized invoice.

    Args:
        invoice: Normalized invoice (invoice_date is always set)
        raw: Provider payload, read for payment signals only
        settings: Policy settings (age threshold, prepaid vendors)
        now: Evaluation time

    Returns:
        StatusResolution with status, payment date and deciding rule
    """
    age_cutoff = now.date() - timedelta(days=settings.paid_age_threshold_days)
    if invoice.invoice_date < age_cutoff:
        return StatusResolution(
            status=InvoiceStatus.PAID, payment_date=invoice.invoice_date, reason="age"
        )

    if _has_payment_evidence(invoice, raw):
        payment_date = normalize_date(raw.get("payment_date")) or invoice.invoice_date
        return StatusResolution(
            status=InvoiceStatus.PAID, payment_date=payment_date, reason="payment_evidence"
        )

    if _is_prepaid_vendor(invoice.vendor_name, settings.prepaid_vendors):
        return StatusResolution(
            status=InvoiceStatus.PAID, payment_date=invoice.invoice_date, reason="prepaid_vendor"
        )

    if is_past_due(invoice.due_date, now):
        return StatusResolution(status=InvoiceStatus.OVERDUE, reason="past_due")

    return StatusResolution(status=InvoiceStatus.PENDING, reason="not_due")
