"""Document extractor: document bytes in, raw extraction payload out.

Composes text extraction (``invoiceflow.ocr``) with the configured LLM
provider. This is the only extraction entry point the ingestion pipeline uses.
"""

import asyncio
import logging

from invoiceflow.extraction.base import ExtractionProvider, ExtractionResult
from invoiceflow.ocr.service import OCRService

logger = logging.getLogger(__name__)


class DocumentExtractor:
    """Turns an uploaded document into an untyped extraction payload."""

    def __init__(self, ocr_service: OCRService, provider: ExtractionProvider) -> None:
        self.ocr_service = ocr_service
        self.provider = provider

    @property
    def provider_name(self) -> str:
        return self.provider.provider_name

    async def extract(
        self,
        data: bytes,
        file_name: str,
        content_type: str | None = None,
        categories: list[str] | None = None,
    ) -> ExtractionResult:
        """Extract a raw payload from a document.

        A document that cannot be decoded, or has no text at all, yields a
        result flagged ``unreadable`` and the provider is not called.

        Args:
            data: Raw document bytes
            file_name: Original file name
            content_type: MIME type, if known
            categories: Workspace category names for delegated categorization

        Returns:
            ExtractionResult from the provider, or describing the unreadable document
        """
        ocr_result = await asyncio.to_thread(
            self.ocr_service.extract_text, data, file_name, content_type
        )

        if not ocr_result.success:
            return self._unreadable(ocr_result.error or "Text extraction failed")

        if not ocr_result.text.strip():
            logger.info(f"No text found in {ocr_result.source} document {file_name}")
            return self._unreadable("No text found in document")

        return await self.provider.extract_invoice_fields(ocr_result.text, categories)

    async def aclose(self) -> None:
        """Release the provider's connections."""
        await self.provider.aclose()

    def _unreadable(self, error: str) -> ExtractionResult:
        return ExtractionResult(
            raw_extraction=None,
            success=False,
            error=error,
            provider=self.provider_name,
            unreadable=True,
        )
