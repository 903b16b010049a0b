"""Abstract base class for extraction providers.

Enables switching between extraction backends (OpenAI, Ollama) behind one
interface.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

Providers return the backend's payload untouched in ``raw_extraction``; typing
and validation happen in ``invoiceflow.invoices.normalizer``. Providers never
retry: a failed call is reported once and the caller decides.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from invoiceflow.shared.config import Settings


class ExtractionResult(BaseModel):
    """Result of extraction operation.

    Attributes:
        raw_extraction: Backend payload, or None if the backend returned nothing usable
        success: Whether the backend call succeeded and returned parseable JSON
        error: Error message if operation failed
        provider: Name of provider that performed extraction (e.g., 'openai', 'ollama')
        unreadable: Text extraction failed or found no text in the document
    """

    raw_extraction: dict[str, Any] | None
    success: bool
    error: str | None = None
    provider: str
    unreadable: bool = False


class ExtractionProvider(ABC):
    """Abstract base class for invoice extraction providers.

    All extraction backends must implement this interface. Calls are async so
    the orchestrator can bound them with a timeout and cancel them.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    async def extract_invoice_fields(
        self, text: str, categories: list[str] | None = None
    ) -> ExtractionResult:
        """Extract invoice fields from document text.

        Args:
            text: Document text (OCR output or PDF text layer)
            categories: Workspace category names to choose from, if the
                deployment delegates categorization to the backend

        Returns:
            ExtractionResult with the raw payload or error
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'ollama')
        """
        pass

    async def aclose(self) -> None:
        """Release network clients held by the provider."""

    def _failure(self, error: str) -> ExtractionResult:
        return ExtractionResult(
            raw_extraction=None,
            success=False,
            error=error,
            provider=self.provider_name,
        )

    def _payload(self, payload: Any) -> ExtractionResult:
        """Wrap a decoded payload; anything but a JSON object counts as nothing extracted."""
        return ExtractionResult(
            raw_extraction=payload if isinstance(payload, dict) else None,
            success=True,
            error=None if isinstance(payload, dict) else "Backend returned no JSON object",
            provider=self.provider_name,
        )
