"""Unit tests for OCR service.

Tests cover:
- Document kind detection
- Text extraction from images, PDFs and text files
- Error handling for invalid files
- Configuration management
"""

import io
import os
from unittest.mock import MagicMock, patch

import pytesseract
import pytest
from PIL import Image

from invoiceflow.ocr.service import OCRResult, OCRService
from invoiceflow.shared.config import Settings


@pytest.fixture
def image_bytes() -> bytes:
    """Create a simple white test image as PNG bytes."""
    img = Image.new("RGB", (200, 50), color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def ocr_service() -> OCRService:
    """Create OCR service instance."""
    return OCRService(Settings())


def test_ocr_service_initialization(ocr_service: OCRService) -> None:
    assert isinstance(ocr_service.settings, Settings)


@pytest.mark.parametrize(
    ("data", "file_name", "content_type", "expected"),
    [
        (b"%PDF-1.7 ...", "upload.bin", None, "pdf"),
        (b"...", "invoice.PDF", None, "pdf"),
        (b"...", "invoice", "application/pdf", "pdf"),
        (b"Total 10", "invoice.txt", None, "text"),
        (b"Total 10", "invoice", "text/plain", "text"),
        (b"\x89PNG", "scan.png", "image/png", "image"),
    ],
)
def test_detect_kind(data: bytes, file_name: str, content_type: str | None, expected: str) -> None:
    assert OCRService.detect_kind(data, file_name, content_type) == expected


@patch("invoiceflow.ocr.service.pytesseract.image_to_string")
def test_extract_text_from_image(
    mock_ocr: MagicMock, ocr_service: OCRService, image_bytes: bytes
) -> None:
    """Test successful text extraction from image."""
    mock_ocr.return_value = "Sample extracted text"

    result = ocr_service.extract_text(image_bytes, "scan.png", "image/png")

    assert isinstance(result, OCRResult)
    assert result.text == "Sample extracted text"
    assert result.success is True
    assert result.error is None
    assert result.source == "image"
    mock_ocr.assert_called_once()


@patch("invoiceflow.ocr.service.extract_pdf_text")
def test_extract_text_from_pdf(mock_pdf: MagicMock, ocr_service: OCRService) -> None:
    mock_pdf.return_value = "INVOICE INV-1"

    result = ocr_service.extract_text(b"%PDF-1.4 fake", "invoice.pdf")

    assert result.success is True
    assert result.text == "INVOICE INV-1"
    assert result.source == "pdf"


def test_extract_text_from_text_file(ocr_service: OCRService) -> None:
    result = ocr_service.extract_text("Total: €12,50".encode(), "invoice.txt")

    assert result.success is True
    assert result.text == "Total: €12,50"
    assert result.source == "text"


def test_extract_text_invalid_image(ocr_service: OCRService) -> None:
    """Test error handling for bytes that are not an image."""
    result = ocr_service.extract_text(b"This is not an image", "scan.png", "image/png")

    assert result.success is False
    assert result.text == ""
    assert (result.error or "").startswith("Text extraction failed")


@patch(
    "invoiceflow.ocr.service.pytesseract.image_to_string",
    side_effect=pytesseract.TesseractNotFoundError(),
)
def test_missing_tesseract_propagates(
    mock_ocr: MagicMock, ocr_service: OCRService, image_bytes: bytes
) -> None:
    with pytest.raises(pytesseract.TesseractNotFoundError):
        ocr_service.extract_text(image_bytes, "scan.png", "image/png")


@patch.dict(os.environ, {"TESSERACT_CMD": "/custom/path/tesseract"})
def test_custom_tesseract_path() -> None:
    """Test that custom Tesseract path is configured from environment."""
    with patch("invoiceflow.ocr.service.pytesseract.pytesseract") as mock_pytesseract:
        OCRService(Settings())

        assert mock_pytesseract.tesseract_cmd == "/custom/path/tesseract"
