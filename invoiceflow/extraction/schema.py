"""Extraction payload contract shared by all providers.

Providers are asked for a flat JSON object with the keys below. Nothing here
validates the answer: the payload is handed to the normalizer as-is, since
LLM output routinely violates whatever schema it was given.
"""

from typing import Any

# Keys the normalizer, status resolver and categorizer read from a payload
EXTRACTION_FIELDS: dict[str, dict[str, Any]] = {
    "is_invoice": {"type": ["boolean", "null"]},
    "document_type": {"type": ["string", "null"]},
    "invoice_id": {"type": ["string", "null"]},
    "vendor_name": {"type": ["string", "null"]},
    "customer_name": {"type": ["string", "null"]},
    "invoice_date": {"type": ["string", "null"], "format": "date"},
    "due_date": {"type": ["string", "null"], "format": "date"},
    "payment_date": {"type": ["string", "null"], "format": "date"},
    "payment_method": {"type": ["string", "null"]},
    "is_paid": {"type": ["boolean", "null"]},
    "invoice_total": {"type": ["number", "null"]},
    "amount_due": {"type": ["number", "null"]},
    "amount_paid": {"type": ["number", "null"]},
    "sub_total": {"type": ["number", "null"]},
    "total_tax": {"type": ["number", "null"]},
    "total_discount": {"type": ["number", "null"]},
    "currency": {"type": ["string", "null"]},
    "line_items": {
        "type": ["array", "null"],
        "items": {
            "type": "object",
            "properties": {
                "description": {"type": ["string", "null"]},
                "quantity": {"type": ["number", "null"]},
                "unit_price": {"type": ["number", "null"]},
                "amount": {"type": ["number", "null"]},
            },
        },
    },
}

# Fields that carry invoice content; classification flags and defaults do not count
CONTENT_FIELDS = [
    "invoice_id",
    "vendor_name",
    "customer_name",
    "invoice_date",
    "due_date",
    "payment_date",
    "invoice_total",
    "amount_due",
    "amount_paid",
    "sub_total",
    "total_tax",
    "total_discount",
    "line_items",
]


def get_function_schema(categories: list[str] | None = None) -> dict[str, Any]:
    """Get the function calling schema for invoice extraction.

    Args:
        categories: Workspace category names offered as a closed choice

    Returns:
        Function definition dict
    """
    properties = dict(EXTRACTION_FIELDS)
    if categories:
        properties["category"] = {"type": ["string", "null"], "enum": [*categories, None]}

    return {
        "name": "extract_invoice_data",
        "description": "Extract structured invoice data from document text",
        "parameters": {"type": "object", "properties": properties},
    }


def has_usable_fields(payload: Any) -> bool:
    """True if the payload is an object with at least one non-empty content field."""
    if not isinstance(payload, dict):
        return False
    for name in CONTENT_FIELDS:
        value = payload.get(name)
        if isinstance(value, str):
            value = value.strip()
        if value not in (None, "", []):
            return True
    return False


def build_extraction_prompt(text: str, categories: list[str] | None = None) -> str:
    """Build the extraction prompt for a document.

    Args:
        text: Text of the document (OCR output or PDF text layer)
        categories: Workspace category names; when given, the model picks one

    Returns:
        Prompt string
    """
    keys = ", ".join([*EXTRACTION_FIELDS, "category"] if categories else EXTRACTION_FIELDS)
    category_instruction = ""
    if categories:
        names = ", ".join(f'"{name}"' for name in categories)
        category_instruction = (
            f'- "category": choose exactly one of [{names}] or null if none fits. '
            "Never invent a new category.\n"
        )

    return f"""Extract invoice information from the document text below and return ONLY a \
JSON object with these keys: {keys}.

INSTRUCTIONS:
- Use null for any field that is not clearly present
- Set "is_invoice" to false if the document is not an invoice, bill or receipt
- Dates as YYYY-MM-DD; amounts as plain numbers without currency symbols
- "currency": ISO 4217 code if shown, otherwise the currency symbol
- "invoice_total" is the grand total; "amount_due" the outstanding balance
- "line_items": one entry per billed line, in document order
- "payment_method" only if the document says how it was paid
{category_instruction}
DOCUMENT:
{text}

OUTPUT:"""
