"""Tests for the Tesseract OCR engine wrapper (mocked)."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytesseract
import pytest

from batchdoc.errors import RecoveryFailure
from batchdoc.ocr.tesseract_engine import BoundingBox, OCRResult, OCRWord, TesseractEngine


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "Moisture", "12.5%", "", "Batch"],
        "conf": [-1, 95, 88, -1, 72],
        "left": [0, 10, 70, 0, 10],
        "top": [0, 10, 10, 0, 50],
        "width": [0, 50, 50, 0, 40],
        "height": [0, 20, 20, 0, 20],
        "block_num": [0, 1, 1, 0, 2],
        "par_num": [0, 1, 1, 0, 1],
        "line_num": [0, 1, 1, 0, 1],
        "word_num": [0, 1, 2, 0, 1],
    }


def _setup_mock(mock_pytesseract: MagicMock, text: str = "Moisture 12.5%\nBatch") -> None:
    mock_pytesseract.image_to_string.return_value = text
    mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()
    mock_pytesseract.Output.DICT = "dict"
    mock_pytesseract.get_tesseract_version.return_value = "5.3.0"
    mock_pytesseract.TesseractNotFoundError = pytesseract.TesseractNotFoundError


class TestBoundingBox:
    """Tests for the BoundingBox data class."""

    def test_creation(self) -> None:
        bbox = BoundingBox(x=10, y=20, width=100, height=50)
        assert bbox.x == 10
        assert bbox.height == 50


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_recognize(self, mock_pytesseract: MagicMock, document_image: Path) -> None:
        _setup_mock(mock_pytesseract)

        engine = TesseractEngine(default_lang="eng")
        result = engine.recognize(document_image)

        assert isinstance(result, OCRResult)
        assert result.text == "Moisture 12.5%\nBatch"
        assert [w.text for w in result.words] == ["Moisture", "12.5%", "Batch"]
        assert isinstance(result.words[0], OCRWord)
        assert result.language == "eng"
        assert result.confidence == pytest.approx((95 + 88 + 72) / 3)

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_confidence_stays_on_0_100_scale(
        self, mock_pytesseract: MagicMock, document_image: Path
    ) -> None:
        _setup_mock(mock_pytesseract)
        result = TesseractEngine().recognize(document_image)
        assert result.words[0].confidence == 95.0

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_words_grouped_into_lines(
        self, mock_pytesseract: MagicMock, document_image: Path
    ) -> None:
        _setup_mock(mock_pytesseract)
        result = TesseractEngine().recognize(document_image)

        assert [line.text for line in result.lines] == ["Moisture 12.5%", "Batch"]
        first = result.lines[0]
        assert first.bbox == BoundingBox(x=10, y=10, width=110, height=20)
        assert first.confidence == pytest.approx((95 + 88) / 2)

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_empty_image(self, mock_pytesseract: MagicMock, document_image: Path) -> None:
        _setup_mock(mock_pytesseract, text="")
        mock_pytesseract.image_to_data.return_value = {
            key: [] for key in _mock_tesseract_data()
        }

        result = TesseractEngine().recognize(document_image)

        assert result.text == ""
        assert result.words == []
        assert result.lines == []
        assert result.confidence == 0.0

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_custom_lang_and_psm(self, mock_pytesseract: MagicMock, document_image: Path) -> None:
        _setup_mock(mock_pytesseract)

        engine = TesseractEngine(default_lang="eng", psm=6, timeout=30)
        result = engine.recognize(document_image, lang="fra")

        assert result.language == "fra"
        kwargs = mock_pytesseract.image_to_string.call_args.kwargs
        assert kwargs["lang"] == "fra"
        assert kwargs["config"] == "--psm 6"
        assert kwargs["timeout"] == 30

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_timeout_raises_recovery_failure(
        self, mock_pytesseract: MagicMock, document_image: Path
    ) -> None:
        _setup_mock(mock_pytesseract)
        mock_pytesseract.image_to_string.side_effect = RuntimeError("Tesseract process timeout")

        engine = TesseractEngine(timeout=5)
        with pytest.raises(RecoveryFailure, match="timed out after 5s"):
            engine.recognize(document_image)

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_tesseract_error_raises_recovery_failure(
        self, mock_pytesseract: MagicMock, document_image: Path
    ) -> None:
        _setup_mock(mock_pytesseract)
        mock_pytesseract.image_to_string.side_effect = pytesseract.TesseractError(1, "bad image")

        with pytest.raises(RecoveryFailure, match="OCR extraction failed"):
            TesseractEngine().recognize(document_image)

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_unreadable_file_raises_recovery_failure(
        self, mock_pytesseract: MagicMock, tmp_path: Path
    ) -> None:
        _setup_mock(mock_pytesseract)
        with pytest.raises(RecoveryFailure):
            TesseractEngine().recognize(tmp_path / "missing.png")

    def test_custom_tesseract_cmd(self) -> None:
        with patch("batchdoc.ocr.tesseract_engine.pytesseract") as mock_pt:
            TesseractEngine(tesseract_cmd="/usr/bin/tesseract")
            assert mock_pt.pytesseract.tesseract_cmd == "/usr/bin/tesseract"


class TestEngineLifecycle:
    """Tests for initialize/terminate and the context manager."""

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_initialize_once(self, mock_pytesseract: MagicMock) -> None:
        _setup_mock(mock_pytesseract)
        engine = TesseractEngine()

        assert engine.initialized is False
        assert engine.initialize() == "5.3.0"
        engine.initialize()

        assert engine.initialized is True
        mock_pytesseract.get_tesseract_version.assert_called_once()

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_missing_binary(self, mock_pytesseract: MagicMock) -> None:
        _setup_mock(mock_pytesseract)
        mock_pytesseract.get_tesseract_version.side_effect = pytesseract.TesseractNotFoundError()

        with pytest.raises(RecoveryFailure, match="OCR engine unavailable"):
            TesseractEngine().initialize()

    @patch("batchdoc.ocr.tesseract_engine.pytesseract")
    def test_context_manager_terminates(self, mock_pytesseract: MagicMock) -> None:
        _setup_mock(mock_pytesseract)

        with TesseractEngine() as engine:
            assert engine.initialized is True
        assert engine.initialized is False
