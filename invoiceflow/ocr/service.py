"""Document text extraction.

- PDFs: text layer via pdfminer.six
- Images: Tesseract OCR via pytesseract
- text/*: decoded as UTF-8

Based on pytesseract documentation:
https://github.com/madmaze/pytesseract
"""

import io
import logging
import os
from pathlib import Path

import pytesseract
from pdfminer.high_level import extract_text as extract_pdf_text
from PIL import Image
from pydantic import BaseModel

from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


class OCRResult(BaseModel):
    """Result of text extraction.

    Attributes:
        text: Extracted text content
        success: Whether operation succeeded
        error: Error message if operation failed
        source: How the text was obtained (pdf, image, text)
    """

    text: str
    success: bool
    error: str | None = None
    source: str | None = None


class OCRService:
    """Extracts text from uploaded invoice documents.

    Handles text extraction with proper error handling and configuration
    management. Calls are blocking; async callers run them in a thread.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OCR service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._configure_tesseract()

    def _configure_tesseract(self) -> None:
        """Configure Tesseract command path from environment.

        Allows overriding default Tesseract path via TESSERACT_CMD environment variable.
        Common paths:
        - Linux: /usr/bin/tesseract
        - macOS: /opt/homebrew/bin/tesseract or /usr/local/bin/tesseract
        - Windows: C:\\Program Files\\Tesseract-OCR\\tesseract.exe
        """
        tesseract_cmd = os.getenv("TESSERACT_CMD")
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @staticmethod
    def detect_kind(data: bytes, file_name: str, content_type: str | None = None) -> str:
        """Classify a document as pdf, text or image."""
        suffix = Path(file_name).suffix.lower()
        if data.startswith(PDF_MAGIC) or content_type == "application/pdf" or suffix == ".pdf":
            return "pdf"
        if (content_type or "").startswith("text/") or suffix in {".txt", ".text"}:
            return "text"
        return "image"

    def extract_text(
        self, data: bytes, file_name: str, content_type: str | None = None
    ) -> OCRResult:
        """Extract text from document bytes.

        Args:
            data: Raw document bytes
            file_name: Original file name (used for type detection only)
            content_type: MIME type, if known

        Returns:
            OCRResult with extracted text or error information

        Raises:
            pytesseract.TesseractNotFoundError: If the tesseract binary is not installed
        """
        kind = self.detect_kind(data, file_name, content_type)

        try:
            if kind == "pdf":
                text = extract_pdf_text(io.BytesIO(data))
            elif kind == "text":
                text = data.decode("utf-8", errors="replace")
            else:
                image = Image.open(io.BytesIO(data))
                text = pytesseract.image_to_string(image)

            logger.debug(f"Extracted {len(text)} characters from {kind} document {file_name}")
            return OCRResult(text=text, success=True, source=kind)

        except pytesseract.TesseractNotFoundError:
            # No tesseract binary: an installation error, not a bad document
            raise
        except Exception as e:
            return OCRResult(
                text="", success=False, error=f"Text extraction failed: {str(e)}", source=kind
            )
