"""Text recovery from document files.

Dispatches on file extension: raster images are preprocessed and run
through an optical recognition backend, PDFs have their embedded text
read directly. The backend used for images is picked from a single table
keyed by ``ocr.method``.
"""

import tempfile
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from batchdoc.errors import UnsupportedFileType
from batchdoc.preprocessing.pipeline import PreprocessingPipeline, QualityMetrics
from batchdoc.utils.config import AppConfig, OCRConfig
from batchdoc.utils.logger import get_logger

from .pdf_handler import PDFHandler
from .tesseract_engine import OCRLine, OCRResult, OCRWord, TesseractEngine

logger = get_logger(__name__)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".tiff", ".tif", ".bmp"})
PDF_EXTENSIONS = frozenset({".pdf"})
SUPPORTED_EXTENSIONS = IMAGE_EXTENSIONS | PDF_EXTENSIONS


class RecoveryMethod(StrEnum):
    """How the text of a document was obtained."""

    OPTICAL = "optical"
    DIRECT_TEXT = "direct-text"


class ImageBackend(Protocol):
    """Optical recognition backend for image files."""

    def recognize(self, image_path: Path, lang: str | None = None) -> OCRResult: ...

    def terminate(self) -> None: ...


@dataclass
class RecoveredText:
    """Raw text recovered from one document, with a 0-100 confidence."""

    text: str
    confidence: float
    method: RecoveryMethod
    engine: str
    words: list[OCRWord] = field(default_factory=list)
    lines: list[OCRLine] = field(default_factory=list)
    page_count: int | None = None
    quality: QualityMetrics | None = None

    def to_metadata(self) -> dict:
        """Summarize the recovery for the extraction audit blob."""
        return {
            "ocr_confidence": self.confidence,
            "ocr_method": self.method.value,
            "engine": self.engine,
            "page_count": self.page_count,
            "word_count": len(self.words),
            "lines": [line.text for line in self.lines],
            "quality": asdict(self.quality) if self.quality else None,
        }


class TextRecoveryEngine:
    """Single entry point for turning a document file into raw text.

    Args:
        config: OCR configuration (method, PDF confidence, fallback).
        backends: Image recognition backends keyed by method name.
        pdf_handler: Reader for embedded PDF text.
        preprocessing: Image transform applied before recognition.
    """

    def __init__(
        self,
        config: OCRConfig,
        backends: dict[str, ImageBackend],
        pdf_handler: PDFHandler,
        preprocessing: PreprocessingPipeline,
    ) -> None:
        if config.method not in backends:
            raise ValueError(f"No text recovery backend registered for {config.method!r}")
        self.config = config
        self.backends = backends
        self.pdf_handler = pdf_handler
        self.preprocessing = preprocessing

    @classmethod
    def from_config(cls, config: AppConfig) -> "TextRecoveryEngine":
        """Build the engine and its collaborators from application config."""
        backends: dict[str, ImageBackend] = {
            "tesseract": TesseractEngine(
                tesseract_cmd=config.ocr.tesseract_cmd,
                default_lang=config.ocr.default_lang,
                psm=config.ocr.psm,
                timeout=config.ocr.timeout_seconds,
            ),
        }
        return cls(
            config=config.ocr,
            backends=backends,
            pdf_handler=PDFHandler(dpi=config.ocr.pdf_dpi),
            preprocessing=PreprocessingPipeline(config.preprocessing),
        )

    @property
    def backend(self) -> ImageBackend:
        return self.backends[self.config.method]

    def extract(self, file_path: Path | str) -> RecoveredText:
        """Recover the raw text of a document.

        Args:
            file_path: Image or PDF file on disk.

        Returns:
            RecoveredText with text, confidence and positional detail.

        Raises:
            UnsupportedFileType: If the extension has no backend.
            RecoveryFailure: If OCR or PDF text extraction fails.
        """
        path = Path(file_path)
        extension = path.suffix.lower()

        if extension in IMAGE_EXTENSIONS:
            return self._recover_image(path)
        if extension in PDF_EXTENSIONS:
            return self._recover_pdf(path)
        raise UnsupportedFileType(extension or path.name)

    def close(self) -> None:
        """Terminate every image backend."""
        for backend in self.backends.values():
            backend.terminate()

    def _recover_image(self, image_path: Path) -> RecoveredText:
        logger.info("Running %s OCR on %s", self.config.method, image_path.name)
        with self.preprocessing.preprocessed_copy(image_path) as (ocr_path, quality):
            result = self.backend.recognize(ocr_path)

        return RecoveredText(
            text=result.text,
            confidence=result.confidence,
            method=RecoveryMethod.OPTICAL,
            engine=self.config.method,
            words=result.words,
            lines=result.lines,
            page_count=1,
            quality=quality,
        )

    def _recover_pdf(self, pdf_path: Path) -> RecoveredText:
        text, page_count = self.pdf_handler.extract_text(pdf_path)

        if not text and self.config.pdf_ocr_fallback:
            logger.info("%s has no text layer, falling back to OCR", pdf_path.name)
            return self._recover_pdf_pages(pdf_path)

        return RecoveredText(
            text=text,
            confidence=self.config.pdf_text_confidence,
            method=RecoveryMethod.DIRECT_TEXT,
            engine="pdfplumber",
            page_count=page_count,
        )

    def _recover_pdf_pages(self, pdf_path: Path) -> RecoveredText:
        """OCR each rendered page of a PDF that has no embedded text."""
        pages = self.pdf_handler.pdf_to_images(pdf_path)
        texts: list[str] = []
        confidences: list[float] = []
        words: list[OCRWord] = []
        lines: list[OCRLine] = []

        with tempfile.TemporaryDirectory(dir=self.preprocessing.config.temp_dir) as tmp:
            for number, page in enumerate(pages, start=1):
                page_path = Path(tmp) / f"{pdf_path.stem}.page{number}.png"
                page.save(page_path)
                recovered = self._recover_image(page_path)
                texts.append(recovered.text)
                confidences.append(recovered.confidence)
                words.extend(recovered.words)
                lines.extend(recovered.lines)

        return RecoveredText(
            text="\n\n".join(texts).strip(),
            confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            method=RecoveryMethod.OPTICAL,
            engine=self.config.method,
            words=words,
            lines=lines,
            page_count=len(pages),
        )
