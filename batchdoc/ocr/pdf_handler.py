"""Direct text extraction and page rasterization for PDF documents.

Embedded text is read with pdfplumber. Pages are only rendered to images
(via pdf2image) when a PDF carries no text layer and OCR fallback is on.
"""

from pathlib import Path

import pdfplumber
from pdf2image import convert_from_path
from PIL import Image

from batchdoc.errors import RecoveryFailure
from batchdoc.utils.logger import get_logger

logger = get_logger(__name__)


class PDFHandler:
    """Reads embedded text from PDFs and renders pages for OCR.

    Args:
        dpi: Resolution for page rendering when falling back to OCR.
    """

    def __init__(self, dpi: int = 300) -> None:
        self.dpi = dpi

    def extract_text(self, pdf_path: Path) -> tuple[str, int]:
        """Extract the embedded text layer of a PDF.

        Args:
            pdf_path: Path to the PDF file.

        Returns:
            Tuple of (text with pages joined by newlines, page_count).

        Raises:
            RecoveryFailure: If the file is missing or cannot be parsed.
        """
        if not pdf_path.exists():
            raise RecoveryFailure(f"PDF extraction failed: file not found: {pdf_path}")

        try:
            with pdfplumber.open(pdf_path) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise RecoveryFailure(f"PDF extraction failed: {exc}") from exc

        text = "\n".join(pages).strip()
        logger.info(
            "Extracted %d characters from %d PDF pages", len(text), len(pages)
        )
        return text, len(pages)

    def pdf_to_images(self, pdf_path: Path) -> list[Image.Image]:
        """Render every page of a PDF as a PIL image.

        Args:
            pdf_path: Path to the PDF file.

        Returns:
            One image per page.

        Raises:
            RecoveryFailure: If rendering fails (e.g. poppler is missing).
        """
        try:
            images = convert_from_path(str(pdf_path), dpi=self.dpi)
        except Exception as exc:
            raise RecoveryFailure(f"PDF extraction failed: {exc}") from exc

        logger.info("Rendered PDF to %d images at %d DPI", len(images), self.dpi)
        return images
