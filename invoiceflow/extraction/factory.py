"""Factory for creating extraction providers based on configuration.

Selects the provider named by configuration and pairs it with text extraction.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from invoiceflow.extraction.base import ExtractionProvider
from invoiceflow.extraction.document import DocumentExtractor
from invoiceflow.extraction.ollama_provider import OllamaExtractionProvider
from invoiceflow.extraction.openai_provider import OpenAIExtractionProvider
from invoiceflow.ocr.service import OCRService
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps ``Settings.extraction_provider`` values to provider classes."""

    _providers: dict[str, type[ExtractionProvider]] = {
        "openai": OpenAIExtractionProvider,
        "ollama": OllamaExtractionProvider,
    }

    @classmethod
    def get_provider_class(cls, name: str) -> type[ExtractionProvider]:
        """Get provider class by name.

        Args:
            name: Provider identifier

        Returns:
            Provider class implementing ExtractionProvider

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown extraction provider: '{name}'. " f"Available providers: {available}"
            )
        return cls._providers[name]


def create_extraction_service(settings: Settings) -> ExtractionProvider:
    """Create the extraction provider selected by configuration.

    Logs a warning if the provider is not available (e.g., missing API key).

    Args:
        settings: Application settings with extraction_provider field

    Returns:
        Configured extraction provider instance

    Raises:
        ValueError: If configured provider is unknown
    """
    provider_name = settings.extraction_provider
    provider_class = ProviderRegistry.get_provider_class(provider_name)

    provider = provider_class(settings)

    if not provider.is_available():
        logger.warning(
            f"Extraction provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., API keys, server URL)."
        )

    logger.info(f"Created extraction provider: {provider_name}")
    return provider


def create_document_extractor(settings: Settings) -> DocumentExtractor:
    """Create the document extractor (text extraction + configured provider).

    Args:
        settings: Application settings

    Returns:
        DocumentExtractor ready for the ingestion pipeline
    """
    return DocumentExtractor(OCRService(settings), create_extraction_service(settings))
