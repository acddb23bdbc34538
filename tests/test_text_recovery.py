"""Tests for extension-based text recovery dispatch."""

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from batchdoc.errors import RecoveryFailure, UnsupportedFileType
from batchdoc.ocr.tesseract_engine import OCRResult
from batchdoc.ocr.text_recovery import (
    SUPPORTED_EXTENSIONS,
    RecoveryMethod,
    TextRecoveryEngine,
)
from batchdoc.preprocessing.pipeline import PreprocessingPipeline
from batchdoc.utils.config import AppConfig, OCRConfig, PreprocessingConfig


class TestDispatch:
    """Tests for choosing a recovery path by file extension."""

    def test_image_goes_through_ocr(
        self,
        recovery_engine: TextRecoveryEngine,
        ocr_backend: MagicMock,
        document_image: Path,
    ) -> None:
        recovered = recovery_engine.extract(document_image)

        assert recovered.method is RecoveryMethod.OPTICAL
        assert recovered.engine == "tesseract"
        assert recovered.confidence == 91.0
        assert recovered.page_count == 1
        assert recovered.quality is not None
        assert "Moisture Content" in recovered.text
        ocr_backend.recognize.assert_called_once()

    def test_ocr_runs_on_preprocessed_copy(
        self,
        recovery_engine: TextRecoveryEngine,
        ocr_backend: MagicMock,
        document_image: Path,
    ) -> None:
        recovery_engine.extract(document_image)

        ocr_path = ocr_backend.recognize.call_args.args[0]
        assert ocr_path != document_image
        assert not ocr_path.exists()

    def test_uppercase_extension(
        self, recovery_engine: TextRecoveryEngine, document_image: Path
    ) -> None:
        upper = document_image.rename(document_image.with_name("SCAN.JPG"))
        assert recovery_engine.extract(upper).method is RecoveryMethod.OPTICAL

    def test_pdf_uses_direct_text(
        self,
        recovery_engine: TextRecoveryEngine,
        pdf_handler: MagicMock,
        ocr_backend: MagicMock,
    ) -> None:
        pdf_handler.extract_text.return_value = ("Certificate Number: C-1", 2)

        recovered = recovery_engine.extract("report.pdf")

        assert recovered.method is RecoveryMethod.DIRECT_TEXT
        assert recovered.engine == "pdfplumber"
        assert recovered.confidence == 85.0
        assert recovered.page_count == 2
        assert recovered.text == "Certificate Number: C-1"
        ocr_backend.recognize.assert_not_called()

    def test_empty_pdf_without_fallback(
        self, recovery_engine: TextRecoveryEngine, pdf_handler: MagicMock
    ) -> None:
        pdf_handler.extract_text.return_value = ("", 1)

        recovered = recovery_engine.extract("scan.pdf")

        assert recovered.text == ""
        assert recovered.method is RecoveryMethod.DIRECT_TEXT
        pdf_handler.pdf_to_images.assert_not_called()

    def test_unsupported_extension(self, recovery_engine: TextRecoveryEngine) -> None:
        with pytest.raises(UnsupportedFileType) as exc_info:
            recovery_engine.extract("notes.docx")
        assert exc_info.value.extension == ".docx"
        assert str(exc_info.value) == "Unsupported file type: .docx"

    def test_missing_extension(self, recovery_engine: TextRecoveryEngine) -> None:
        with pytest.raises(UnsupportedFileType, match="README"):
            recovery_engine.extract("README")

    def test_backend_failure_propagates(
        self,
        recovery_engine: TextRecoveryEngine,
        ocr_backend: MagicMock,
        document_image: Path,
    ) -> None:
        ocr_backend.recognize.side_effect = RecoveryFailure("OCR extraction failed: boom")
        with pytest.raises(RecoveryFailure, match="boom"):
            recovery_engine.extract(document_image)

    def test_supported_extensions(self) -> None:
        assert {".jpg", ".jpeg", ".png", ".webp", ".pdf"} <= SUPPORTED_EXTENSIONS
        assert ".docx" not in SUPPORTED_EXTENSIONS


class TestPdfOcrFallback:
    """Tests for OCR of PDFs that carry no text layer."""

    def test_pages_are_recognized(self, pdf_handler: MagicMock, tmp_path: Path) -> None:
        backend = MagicMock()
        backend.recognize.side_effect = [
            OCRResult(text="Page one", words=[], lines=[], language="eng", confidence=80.0),
            OCRResult(text="Page two", words=[], lines=[], language="eng", confidence=60.0),
        ]
        pdf_handler.extract_text.return_value = ("", 2)
        page = Image.fromarray(np.full((100, 100, 3), 255, dtype=np.uint8))
        pdf_handler.pdf_to_images.return_value = [page, page]
        engine = TextRecoveryEngine(
            config=OCRConfig(pdf_ocr_fallback=True),
            backends={"tesseract": backend},
            pdf_handler=pdf_handler,
            preprocessing=PreprocessingPipeline(PreprocessingConfig(temp_dir=str(tmp_path))),
        )

        recovered = engine.extract(tmp_path / "scan.pdf")

        assert recovered.text == "Page one\n\nPage two"
        assert recovered.confidence == 70.0
        assert recovered.method is RecoveryMethod.OPTICAL
        assert recovered.page_count == 2
        assert backend.recognize.call_count == 2


class TestEngineSetup:
    """Tests for engine construction and lifecycle."""

    def test_unknown_backend_rejected(self, pdf_handler: MagicMock) -> None:
        with pytest.raises(ValueError, match="tesseract"):
            TextRecoveryEngine(
                config=OCRConfig(),
                backends={},
                pdf_handler=pdf_handler,
                preprocessing=PreprocessingPipeline(PreprocessingConfig()),
            )

    def test_from_config(self) -> None:
        config = AppConfig(ocr=OCRConfig(pdf_dpi=150, timeout_seconds=30))
        engine = TextRecoveryEngine.from_config(config)

        assert engine.pdf_handler.dpi == 150
        assert engine.backend.timeout == 30
        assert engine.backend.default_lang == "eng"

    def test_close_terminates_backends(self, recovery_engine: TextRecoveryEngine) -> None:
        recovery_engine.close()
        recovery_engine.backend.terminate.assert_called_once()

    def test_metadata(self, recovery_engine: TextRecoveryEngine, document_image: Path) -> None:
        metadata = recovery_engine.extract(document_image).to_metadata()

        assert metadata["ocr_confidence"] == 91.0
        assert metadata["ocr_method"] == "optical"
        assert metadata["engine"] == "tesseract"
        assert metadata["page_count"] == 1
        assert metadata["word_count"] == 0
        assert set(metadata["quality"]) == {
            "sharpness_before",
            "sharpness_after",
            "contrast_before",
            "contrast_after",
        }
