"""Unit tests for OpenAIExtractionProvider.

Tests the OpenAI function-calling provider with a mocked async client.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from invoiceflow.extraction.openai_provider import OpenAIExtractionProvider
from invoiceflow.shared.config import Settings


@pytest.fixture
def provider() -> OpenAIExtractionProvider:
    """Create OpenAI provider instance."""
    return OpenAIExtractionProvider(Settings(extraction_timeout_seconds=15))


def _mock_response(arguments: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    if arguments is None:
        response.choices[0].message.function_call = None
    else:
        response.choices[0].message.function_call.arguments = arguments
    return response


def test_provider_name(provider: OpenAIExtractionProvider) -> None:
    assert provider.provider_name == "openai"


@patch.dict("os.environ", {}, clear=True)
def test_is_available_without_key(provider: OpenAIExtractionProvider) -> None:
    assert provider.is_available() is False


class TestOpenAIExtraction:
    @pytest.mark.asyncio
    @patch.dict("os.environ", {}, clear=True)
    async def test_extract_without_api_key(self, provider: OpenAIExtractionProvider) -> None:
        """Extraction fails gracefully without API key."""
        result = await provider.extract_invoice_fields("Invoice text")

        assert result.success is False
        assert result.raw_extraction is None
        assert "OPENAI_API_KEY" in (result.error or "")

    @pytest.mark.asyncio
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_extract_empty_text(self, provider: OpenAIExtractionProvider) -> None:
        result = await provider.extract_invoice_fields("   ")

        assert result.success is False
        assert result.error == "Empty document text provided"

    @pytest.mark.asyncio
    @patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_extract_success_returns_raw_payload(
        self, mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
    ) -> None:
        payload = {"invoice_id": "INV-1", "invoice_total": "1,100.00", "vendor_name": "Acme"}
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(
            return_value=_mock_response(json.dumps(payload))
        )
        mock_openai_class.return_value = mock_client

        result = await provider.extract_invoice_fields("INVOICE INV-1 Total $1,100.00")

        assert result.success is True
        assert result.raw_extraction == payload
        assert result.provider == "openai"
        mock_openai_class.assert_called_once_with(api_key="test-key", timeout=15, max_retries=0)

    @pytest.mark.asyncio
    @patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_categories_offered_as_enum(
        self, mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
    ) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_mock_response("{}"))
        mock_openai_class.return_value = mock_client

        await provider.extract_invoice_fields("Invoice", ["Software", "Travel"])

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        schema = kwargs["functions"][0]
        assert schema["parameters"]["properties"]["category"]["enum"] == [
            "Software",
            "Travel",
            None,
        ]
        assert kwargs["function_call"] == {"name": "extract_invoice_data"}

    @pytest.mark.asyncio
    @patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_invalid_json(
        self, mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
    ) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_mock_response("{not json"))
        mock_openai_class.return_value = mock_client

        result = await provider.extract_invoice_fields("Invoice")

        assert result.success is False
        assert "JSON parsing failed" in (result.error or "")

    @pytest.mark.asyncio
    @patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_missing_function_call(
        self, mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
    ) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_mock_response(None))
        mock_openai_class.return_value = mock_client

        result = await provider.extract_invoice_fields("Invoice")

        assert result.success is False
        assert result.error == "No function call in API response"

    @pytest.mark.asyncio
    @patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_api_error_is_reported_once(
        self, mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
    ) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        mock_openai_class.return_value = mock_client

        result = await provider.extract_invoice_fields("Invoice")

        assert result.success is False
        assert result.error == "Extraction failed: rate limited"
        assert mock_client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    @patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    async def test_non_object_payload(
        self, mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
    ) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_mock_response("[1, 2]"))
        mock_openai_class.return_value = mock_client

        result = await provider.extract_invoice_fields("Invoice")

        assert result.success is True
        assert result.raw_extraction is None


@pytest.mark.asyncio
@patch("invoiceflow.extraction.openai_provider.AsyncOpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
async def test_aclose_closes_client(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_client.chat.completions.create = AsyncMock(return_value=_mock_response("{}"))
    mock_client.close = AsyncMock()
    mock_openai_class.return_value = mock_client
    await provider.extract_invoice_fields("Invoice")

    await provider.aclose()
    await provider.aclose()

    mock_client.close.assert_awaited_once()
