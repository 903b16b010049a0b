"""OpenAI-based extraction provider for invoice field extraction.

Uses the OpenAI API with function calling so the model answers with a JSON
argument object. The SDK's own retries are disabled; a failed call surfaces
as a failed ExtractionResult and the upload can be retried as a whole.
"""

import json
import logging
import os
from typing import Any

from openai import AsyncOpenAI

from invoiceflow.extraction.base import ExtractionProvider, ExtractionResult
from invoiceflow.extraction.schema import build_extraction_prompt, get_function_schema
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class OpenAIExtractionProvider(ExtractionProvider):
    """OpenAI-based extraction provider.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: AsyncOpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    async def extract_invoice_fields(
        self, text: str, categories: list[str] | None = None
    ) -> ExtractionResult:
        """Extract invoice fields from document text using OpenAI.

        Args:
            text: Document text
            categories: Workspace category names offered as a closed choice

        Returns:
            ExtractionResult with the raw payload or error, provider='openai'
        """
        if not self.is_available():
            return self._failure("OPENAI_API_KEY environment variable not set")

        if not text or not text.strip():
            return self._failure("Empty document text provided")

        try:
            api_key = os.getenv("OPENAI_API_KEY")
            if self._client is None or self._client.api_key != api_key:
                self._client = AsyncOpenAI(
                    api_key=api_key,
                    timeout=self.settings.extraction_timeout_seconds,
                    max_retries=0,
                )

            response = await self._call_openai(text, categories)

            message = response.choices[0].message
            if message.function_call is None:
                return self._failure("No function call in API response")

            payload = json.loads(message.function_call.arguments)
            return self._payload(payload)

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from OpenAI response: {e}")
            return self._failure(f"JSON parsing failed: {str(e)}")
        except Exception as e:
            logger.error(f"OpenAI extraction failed: {e}")
            return self._failure(f"Extraction failed: {str(e)}")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _call_openai(self, text: str, categories: list[str] | None) -> Any:
        """Call OpenAI chat completions with forced function calling.

        Args:
            text: Document text
            categories: Workspace category names, if any

        Returns:
            OpenAI API response
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return await self._client.chat.completions.create(  # type: ignore[call-overload]
            model=self.settings.openai_model,
            messages=[
                {
                    "role": "system",
                    "content": "You are an invoice data extraction assistant.",
                },
                {"role": "user", "content": build_extraction_prompt(text, categories)},
            ],
            functions=[get_function_schema(categories)],
            function_call={"name": "extract_invoice_data"},
            temperature=0,  # Deterministic output
        )
