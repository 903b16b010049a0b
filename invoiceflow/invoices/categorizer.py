"""Invoice categorization against a workspace's category taxonomy.

Strategies share one interface and are chosen per deployment with
``Settings.categorization_strategy``:

- keyword: tag substring matching over vendor name and line descriptions
- delegated: the extraction backend picks from the workspace's category list
- chained: keyword first, delegated when no tag matches

Whatever the strategy, the result is a workspace category name or
``UNCATEGORIZED``.
"""

import logging
from abc import ABC, abstractmethod

from invoiceflow.invoices.models import (
    UNCATEGORIZED,
    NormalizedInvoice,
    RawExtraction,
    WorkspaceCategoryConfig,
)
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class CategorizationStrategy(ABC):
    """Assigns one category to a normalized invoice."""

    # Whether the extraction backend must be offered the workspace category names
    uses_backend_choice = False

    @property
    @abstractmethod
    def strategy_name(self) -> str:
        """Strategy identifier for logging."""
        pass

    @abstractmethod
    def categorize(
        self,
        invoice: NormalizedInvoice,
        config: WorkspaceCategoryConfig,
        raw: RawExtraction,
    ) -> str:
        """Pick a category.

        Args:
            invoice: Normalized invoice
            config: Workspace category taxonomy
            raw: Provider payload (read by the delegated strategy only)

        Returns:
            A name from ``config`` or ``UNCATEGORIZED``
        """
        pass


class KeywordCategorizer(CategorizationStrategy):
    """First category, in list order, with a tag found in the invoice text."""

    @property
    def strategy_name(self) -> str:
        return "keyword"

    def categorize(
        self,
        invoice: NormalizedInvoice,
        config: WorkspaceCategoryConfig,
        raw: RawExtraction,
    ) -> str:
        haystack = " ".join(
            [invoice.vendor_name, *(item.description for item in invoice.line_items)]
        ).lower()

        for category in config.categories:
            tags = sorted(tag.strip().lower() for tag in category.tags if tag.strip())
            for tag in tags:
                if tag in haystack:
                    logger.debug(f"Invoice {invoice.id} matched tag '{tag}' -> {category.name}")
                    return category.name

        return UNCATEGORIZED


class DelegatedCategorizer(CategorizationStrategy):
    """Accepts the backend's choice only if it is an exact workspace category name."""

    uses_backend_choice = True

    @property
    def strategy_name(self) -> str:
        return "delegated"

    def categorize(
        self,
        invoice: NormalizedInvoice,
        config: WorkspaceCategoryConfig,
        raw: RawExtraction,
    ) -> str:
        choice = raw.get("category")
        if isinstance(choice, str) and choice in config.category_names:
            return choice

        if choice is not None:
            logger.info(f"Rejected category {choice!r} for invoice {invoice.id}: not configured")
        return UNCATEGORIZED


class ChainedCategorizer(CategorizationStrategy):
    """Keyword matching first, delegated choice as the fallback."""

    uses_backend_choice = True

    def __init__(self) -> None:
        self._keyword = KeywordCategorizer()
        self._delegated = DelegatedCategorizer()

    @property
    def strategy_name(self) -> str:
        return "chained"

    def categorize(
        self,
        invoice: NormalizedInvoice,
        config: WorkspaceCategoryConfig,
        raw: RawExtraction,
    ) -> str:
        category = self._keyword.categorize(invoice, config, raw)
        if category != UNCATEGORIZED:
            return category
        return self._delegated.categorize(invoice, config, raw)


_STRATEGIES: dict[str, type[CategorizationStrategy]] = {
    "keyword": KeywordCategorizer,
    "delegated": DelegatedCategorizer,
    "chained": ChainedCategorizer,
}


def create_categorizer(settings: Settings) -> CategorizationStrategy:
    """Create the categorization strategy configured for this deployment.

    Raises:
        ValueError: If the configured strategy is unknown
    """
    name = settings.categorization_strategy
    if name not in _STRATEGIES:
        available = ", ".join(_STRATEGIES)
        raise ValueError(f"Unknown categorization strategy: '{name}'. Available: {available}")
    return _STRATEGIES[name]()
