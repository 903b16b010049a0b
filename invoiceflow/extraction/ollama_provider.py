"""Ollama-based extraction provider for self-hosted LLM inference.

Uses a local Ollama server for structured data extraction from document text.
Supports data sovereignty requirements by running entirely on-premises.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import json
import logging
import re
from typing import Any

import httpx

from invoiceflow.extraction.base import ExtractionProvider, ExtractionResult
from invoiceflow.extraction.schema import build_extraction_prompt
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class OllamaExtractionProvider(ExtractionProvider):
    """Ollama-based extraction provider for self-hosted LLM inference.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.AsyncClient(timeout=settings.extraction_timeout_seconds)

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=5.0)
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except Exception:
            return False

    async def extract_invoice_fields(
        self, text: str, categories: list[str] | None = None
    ) -> ExtractionResult:
        """Extract invoice fields from document text using Ollama.

        Args:
            text: Document text
            categories: Workspace category names offered as a closed choice

        Returns:
            ExtractionResult with the raw payload or error
        """
        if not text or not text.strip():
            return self._failure("Empty document text provided")

        try:
            response_text = await self._call_ollama(build_extraction_prompt(text, categories))
            payload = self._parse_json_response(response_text)
            return self._payload(payload)

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON from Ollama response: {e}")
            return self._failure(f"JSON parsing failed: {str(e)}")
        except Exception as e:
            logger.error(f"Ollama extraction failed: {e}")
            return self._failure(f"Extraction failed: {str(e)}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call_ollama(self, prompt: str) -> str:
        """Call the Ollama generate API.

        Args:
            prompt: Extraction prompt for the LLM

        Returns:
            Raw response text from Ollama

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses
        """
        response = await self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self._model,
                "prompt": prompt,
                "stream": False,
                "options": {
                    "temperature": 0,  # Deterministic output
                    "num_predict": 2048,  # Line items need room
                },
            },
        )
        response.raise_for_status()
        result: str = response.json().get("response", "")
        return result

    def _parse_json_response(self, response_text: str) -> Any:
        """Extract and parse JSON from LLM response.

        Handles common LLM quirks like markdown code blocks.

        Args:
            response_text: Raw LLM response

        Returns:
            Decoded JSON value

        Raises:
            json.JSONDecodeError: If no valid JSON found
        """
        # Try to extract JSON from markdown code block
        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
        if json_match:
            return json.loads(json_match.group(1).strip())

        # Try to find JSON object directly
        json_match = re.search(r"\{[\s\S]*\}", response_text)
        if json_match:
            return json.loads(json_match.group(0))

        # Try parsing entire response
        return json.loads(response_text.strip())
