"""Invoice data models.

The canonical record produced by the ingestion pipeline, the per-workspace
category taxonomy, and the correction log written when a user categorizes an
invoice by hand. Attribute names are snake_case; documents are serialized with
camelCase keys (``model_dump(by_alias=True)``).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNCATEGORIZED = "Uncategorized"
NOT_AVAILABLE = "N/A"

# Untyped provider payload; only read through the normalizer.
RawExtraction = dict[str, Any]


class InvoiceStatus(str, Enum):
    """Lifecycle label of an invoice."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class DocumentModel(BaseModel):
    """Base for models stored as camelCase documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible document with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Any:
        """Build a model from a stored document, ignoring store-specific keys."""
        data = {k: v for k, v in document.items() if k != "_id"}
        return cls.model_validate(data)


class LineItem(DocumentModel):
    """One billed line, in document order."""

    description: str = NOT_AVAILABLE
    quantity: float | None = None
    unit_price: float | None = None
    amount: float = 0.0


class NormalizedInvoice(DocumentModel):
    """Canonical invoice record.

    ``invoice_date`` is never empty and ``invoice_total`` is never negative;
    both are guaranteed by the normalizer before a record is built.
    """

    id: str
    workspace_id: str
    uploaded_by: str | None = None
    invoice_id: str | None = None
    fingerprint: str | None = None

    vendor_name: str = NOT_AVAILABLE
    customer_name: str = NOT_AVAILABLE
    invoice_date: date
    due_date: date | None = None

    invoice_total: float = Field(default=0.0, ge=0)
    sub_total: float | None = None
    total_tax: float | None = None
    total_discount: float | None = None
    amount_paid: float | None = None
    currency: str

    line_items: list[LineItem] = Field(default_factory=list)
    category: str = UNCATEGORIZED
    status: InvoiceStatus = InvoiceStatus.PENDING

    file_name: str | None = None
    storage_path: str | None = None
    uploaded_at: datetime
    payment_date: date | None = None


class Category(DocumentModel):
    """A user-defined category and the tags that select it."""

    name: str
    tags: set[str] = Field(default_factory=set)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("category name must not be blank")
        return value


class WorkspaceCategoryConfig(DocumentModel):
    """Ordered category taxonomy owned by a workspace."""

    id: str
    categories: list[Category] = Field(default_factory=list)

    @field_validator("categories")
    @classmethod
    def _unique_names(cls, value: list[Category]) -> list[Category]:
        names = [category.name for category in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate category names: {', '.join(duplicates)}")
        return value

    @property
    def category_names(self) -> list[str]:
        return [category.name for category in self.categories]


class CorrectionLog(DocumentModel):
    """Manual categorization of a previously uncategorized invoice."""

    id: str
    workspace_id: str
    user_id: str
    source_invoice_id: str
    text_fragment: str
    vendor_name: str
    assigned_category: str
    created_at: datetime
