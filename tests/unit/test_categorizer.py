"""Unit tests for categorization strategies."""

from datetime import UTC, date, datetime

import pytest

from invoiceflow.invoices.categorizer import (
    ChainedCategorizer,
    DelegatedCategorizer,
    KeywordCategorizer,
    create_categorizer,
)
from invoiceflow.invoices.models import (
    UNCATEGORIZED,
    Category,
    LineItem,
    NormalizedInvoice,
    WorkspaceCategoryConfig,
)
from invoiceflow.shared.config import Settings


@pytest.fixture
def config() -> WorkspaceCategoryConfig:
    return WorkspaceCategoryConfig(
        id="ws-1",
        categories=[
            Category(name="Software", tags={"license", "saas", "subscription"}),
            Category(name="Travel", tags={"flight", "hotel"}),
            Category(name="Office", tags={"paper", "subscription"}),
        ],
    )


def _invoice(vendor: str, descriptions: list[str]) -> NormalizedInvoice:
    return NormalizedInvoice(
        id="a1",
        workspace_id="ws-1",
        vendor_name=vendor,
        invoice_date=date(2024, 1, 1),
        currency="USD",
        line_items=[LineItem(description=text) for text in descriptions],
        uploaded_at=datetime(2024, 1, 1, tzinfo=UTC),
    )


class TestKeywordCategorizer:
    def test_matches_tag_in_line_description(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Some Vendor", ["Return FLIGHT to Berlin"])

        assert KeywordCategorizer().categorize(invoice, config, {}) == "Travel"

    def test_matches_tag_in_vendor_name(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Acme SaaS Inc", [])

        assert KeywordCategorizer().categorize(invoice, config, {}) == "Software"

    def test_first_category_in_list_order_wins(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Vendor", ["Annual subscription"])

        assert KeywordCategorizer().categorize(invoice, config, {}) == "Software"

    def test_no_overlap_is_uncategorized(self) -> None:
        config = WorkspaceCategoryConfig(
            id="ws-1",
            categories=[Category(name="Software"), Category(name="Travel")],
        )
        invoice = _invoice("Unknown Vendor LLC", [])

        assert KeywordCategorizer().categorize(invoice, config, {}) == UNCATEGORIZED

    def test_ignores_backend_choice(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Unknown Vendor LLC", [])

        assert KeywordCategorizer().categorize(invoice, config, {"category": "Travel"}) == (
            UNCATEGORIZED
        )

    def test_idempotent(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Vendor", ["hotel night", "paper"])
        categorizer = KeywordCategorizer()

        first = categorizer.categorize(invoice, config, {})
        assert categorizer.categorize(invoice, config, {}) == first


class TestDelegatedCategorizer:
    def test_accepts_configured_category(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Vendor", [])

        assert DelegatedCategorizer().categorize(invoice, config, {"category": "Travel"}) == (
            "Travel"
        )

    @pytest.mark.parametrize("choice", ["Groceries", "travel", None, 3])
    def test_rejects_unknown_choice(self, config: WorkspaceCategoryConfig, choice: object) -> None:
        invoice = _invoice("Vendor", [])

        assert DelegatedCategorizer().categorize(invoice, config, {"category": choice}) == (
            UNCATEGORIZED
        )


class TestChainedCategorizer:
    def test_keyword_match_first(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Vendor", ["hotel"])

        assert ChainedCategorizer().categorize(invoice, config, {"category": "Software"}) == (
            "Travel"
        )

    def test_falls_back_to_backend_choice(self, config: WorkspaceCategoryConfig) -> None:
        invoice = _invoice("Vendor", ["consulting"])

        assert ChainedCategorizer().categorize(invoice, config, {"category": "Office"}) == "Office"


def test_create_categorizer_from_settings() -> None:
    assert isinstance(create_categorizer(Settings()), KeywordCategorizer)
    assert isinstance(
        create_categorizer(Settings(categorization_strategy="delegated")), DelegatedCategorizer
    )
    assert create_categorizer(Settings(categorization_strategy="chained")).uses_backend_choice


def test_duplicate_category_names_rejected() -> None:
    with pytest.raises(ValueError):
        WorkspaceCategoryConfig(
            id="ws-1", categories=[Category(name="Travel"), Category(name="Travel")]
        )
