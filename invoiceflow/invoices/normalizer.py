"""Field normalization for untrusted extraction output.

Providers return loosely-typed payloads: fields go missing, numbers arrive as
strings, dates come in whatever format the document used and sometimes make no
sense at all. Every value read from a payload passes through one of the
``normalize_*`` functions below, each of which either returns a clean value or
``None``. ``normalize_extraction`` composes them into a ``NormalizedInvoice``
and applies the documented defaults.
"""

import logging
import math
import re
import uuid
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from invoiceflow.invoices.duplicates import compute_fingerprint
from invoiceflow.invoices.models import (
    NOT_AVAILABLE,
    LineItem,
    NormalizedInvoice,
    RawExtraction,
)
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)

# Common date formats in invoices, tried in order after ISO 8601
DATE_FORMATS = [
    "%m/%d/%Y",  # 11/26/2025
    "%d/%m/%Y",  # 26/11/2025
    "%d.%m.%Y",  # 26.11.2025
    "%B %d, %Y",  # November 26, 2025
    "%b %d, %Y",  # Nov 26, 2025
    "%d %B %Y",  # 26 November 2025
    "%d %b %Y",  # 26 Nov 2025
]

MIN_YEAR = 1900
MAX_YEAR = 2100

CURRENCY_SYMBOLS = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "₹": "INR",
    "RS": "INR",
    "RS.": "INR",
    "¥": "JPY",
    "A$": "AUD",
    "C$": "CAD",
    "FR.": "CHF",
}

# Marketplace invoices append product identifiers to line descriptions
DESCRIPTION_STOP_MARKERS = ["warranty:", "imei/serial no:", "hsn/sac:", "fsn:"]

_AMOUNT_PATTERN = re.compile(
    r"^(?:[A-Za-z]{3}|[A-Za-z]{0,2}[$€£₹¥]|Rs\.?)?\s*"
    r"(?P<number>[-+]?[\d.,]*\d)\s*"
    r"(?:[A-Za-z]{3}|[$€£₹¥])?$",
    re.IGNORECASE,
)
_THOUSANDS_ONLY = re.compile(r"^\d{1,3}(,\d{3})+$")
_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}$")


class NormalizationResult(BaseModel):
    """Normalized invoice plus the fields that had to be defaulted."""

    invoice: NormalizedInvoice
    defaulted_fields: list[str] = Field(default_factory=list)


def normalize_amount(value: Any) -> float | None:
    """Coerce a monetary value to a finite, non-negative float.

    Accepts numbers and numeric strings with an optional currency code or
    symbol and thousands separators ("$1,100.00", "1.020,50 EUR").
    Booleans, negatives, NaN/infinity and anything else yield ``None``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        number = _parse_amount_string(value)
        if number is None:
            return None
    else:
        return None

    if not math.isfinite(number) or number < 0:
        return None
    return number


def _parse_amount_string(text: str) -> float | None:
    match = _AMOUNT_PATTERN.match(text.strip())
    if not match:
        return None
    number = match.group("number")

    if "," in number and "." in number:
        if number.rfind(",") > number.rfind("."):
            # European: 1.020,50
            number = number.replace(".", "").replace(",", ".")
        else:
            number = number.replace(",", "")
    elif "," in number:
        if _THOUSANDS_ONLY.match(number.lstrip("+-")):
            number = number.replace(",", "")
        else:
            number = number.replace(",", ".")

    try:
        return float(number)
    except ValueError:
        return None


def normalize_date(value: Any) -> date | None:
    """Parse a calendar date; unparseable or implausible values yield ``None``."""
    parsed: date | None = None

    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = _parse_date_string(value.strip())

    if parsed is None or not MIN_YEAR <= parsed.year <= MAX_YEAR:
        return None
    return parsed


def _parse_date_string(text: str) -> date | None:
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text[:20], fmt).date()
        except ValueError:
            continue
    return None


def normalize_text(value: Any) -> str | None:
    """Trim a string; blank strings count as absent.

    Whole numbers are accepted since invoice numbers are often returned as numbers.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def resolve_currency(value: Any) -> str | None:
    """Resolve an ISO 4217 code from a code or a known symbol."""
    text = normalize_text(value)
    if text is None:
        return None
    if _CURRENCY_CODE.match(text):
        return text.upper()
    return CURRENCY_SYMBOLS.get(text.upper())


def normalize_currency(value: Any, default: str) -> str:
    """Like ``resolve_currency`` but falls back to the deployment default."""
    code = resolve_currency(value)
    if code is None:
        if value is not None:
            logger.debug(f"Unrecognised currency {value!r}, using {default}")
        return default.upper()
    return code


def clean_description(value: Any) -> str:
    """Trim a line description and cut it at known identifier markers."""
    description = normalize_text(value)
    if description is None:
        return NOT_AVAILABLE

    lowered = description.lower()
    for marker in DESCRIPTION_STOP_MARKERS:
        position = lowered.find(marker)
        if position != -1:
            description = description[:position]
            lowered = lowered[:position]

    return description.strip() or NOT_AVAILABLE


def normalize_line_items(value: Any) -> list[LineItem]:
    """Normalize each line independently, keeping document order."""
    if not isinstance(value, list):
        return []

    items = []
    for raw_item in value:
        if not isinstance(raw_item, dict):
            continue
        amount = normalize_amount(raw_item.get("amount"))
        items.append(
            LineItem(
                description=clean_description(raw_item.get("description")),
                quantity=normalize_amount(raw_item.get("quantity")),
                unit_price=normalize_amount(raw_item.get("unit_price")),
                amount=amount if amount is not None else 0.0,
            )
        )
    return items


def normalize_extraction(
    raw: RawExtraction,
    workspace_id: str,
    uploaded_by: str | None,
    settings: Settings,
    now: datetime,
) -> NormalizationResult:
    """Build a normalized invoice from a provider payload.

    Args:
        raw: Payload returned by the extraction provider
        workspace_id: Owning workspace, taken from the caller context
        uploaded_by: Uploading user, taken from the caller context
        settings: Policy settings (currency and due date defaults)
        now: Ingestion time

    Returns:
        NormalizationResult with the invoice and the names of defaulted fields
    """
    defaulted: list[str] = []

    invoice_id = normalize_text(raw.get("invoice_id"))

    vendor_name = normalize_text(raw.get("vendor_name"))
    if vendor_name is None:
        defaulted.append("vendor_name")
    customer_name = normalize_text(raw.get("customer_name"))
    if customer_name is None:
        defaulted.append("customer_name")

    invoice_date = normalize_date(raw.get("invoice_date"))
    if invoice_date is None:
        defaulted.append("invoice_date")

    due_date = normalize_date(raw.get("due_date"))
    if due_date is None and settings.due_date_policy == "net_days":
        defaulted.append("due_date")
        due_date = (invoice_date or now.date()) + timedelta(days=settings.due_date_default_days)

    invoice_total = normalize_amount(raw.get("invoice_total"))
    if invoice_total is None:
        invoice_total = normalize_amount(raw.get("amount_due"))
    if invoice_total is None:
        defaulted.append("invoice_total")

    if resolve_currency(raw.get("currency")) is None:
        defaulted.append("currency")
    currency = normalize_currency(raw.get("currency"), settings.default_currency)

    fingerprint = None
    if invoice_id is None and vendor_name and invoice_date and invoice_total is not None:
        fingerprint = compute_fingerprint(vendor_name, invoice_date, invoice_total)

    invoice = NormalizedInvoice(
        id=uuid.uuid4().hex,
        workspace_id=workspace_id,
        uploaded_by=uploaded_by,
        invoice_id=invoice_id,
        fingerprint=fingerprint,
        vendor_name=vendor_name or NOT_AVAILABLE,
        customer_name=customer_name or NOT_AVAILABLE,
        invoice_date=invoice_date or now.date(),
        due_date=due_date,
        invoice_total=invoice_total if invoice_total is not None else 0.0,
        sub_total=normalize_amount(raw.get("sub_total")),
        total_tax=normalize_amount(raw.get("total_tax")),
        total_discount=normalize_amount(raw.get("total_discount")),
        amount_paid=normalize_amount(raw.get("amount_paid")),
        currency=currency,
        line_items=normalize_line_items(raw.get("line_items")),
        uploaded_at=now,
    )

    if defaulted:
        logger.debug(f"Invoice {invoice.id} defaulted fields: {', '.join(defaulted)}")

    return NormalizationResult(invoice=invoice, defaulted_fields=defaulted)
