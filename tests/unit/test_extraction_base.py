"""Unit tests for extraction base classes and interfaces.

Tests cover:
- Abstract base class enforcement
- ExtractionResult model validation
- Payload and failure helpers shared by providers
"""

import pytest

from invoiceflow.extraction.base import ExtractionProvider, ExtractionResult
from invoiceflow.shared.config import Settings


class EchoProvider(ExtractionProvider):
    async def extract_invoice_fields(
        self, text: str, categories: list[str] | None = None
    ) -> ExtractionResult:
        return self._payload({"vendor_name": text})

    def is_available(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return "echo"


def test_extraction_result_with_failure() -> None:
    result = ExtractionResult(raw_extraction=None, success=False, error="Test error", provider="t")

    assert result.success is False
    assert result.raw_extraction is None
    assert result.error == "Test error"


def test_extraction_provider_is_abstract() -> None:
    """ExtractionProvider cannot be instantiated directly."""
    with pytest.raises(TypeError):
        ExtractionProvider(Settings())  # type: ignore[abstract]


def test_incomplete_provider_rejected() -> None:
    class IncompleteProvider(ExtractionProvider):
        def is_available(self) -> bool:
            return True

    with pytest.raises(TypeError):
        IncompleteProvider(Settings())  # type: ignore[abstract]


@pytest.mark.asyncio
async def test_concrete_provider() -> None:
    provider = EchoProvider(Settings())

    result = await provider.extract_invoice_fields("Acme")

    assert result.raw_extraction == {"vendor_name": "Acme"}
    assert result.provider == "echo"


def test_payload_helper_rejects_non_objects() -> None:
    provider = EchoProvider(Settings())

    result = provider._payload(["not", "an", "object"])

    assert result.success is True
    assert result.raw_extraction is None
    assert result.error == "Backend returned no JSON object"


def test_failure_helper() -> None:
    result = EchoProvider(Settings())._failure("Rate limit exceeded")

    assert result.success is False
    assert result.raw_extraction is None
    assert result.provider == "echo"
