"""Tesseract OCR engine wrapper with word- and line-level extraction.

A single engine instance may be shared by several pipeline runs. Tesseract
calls on one instance are serialized by a lock, and the engine has an
explicit ``initialize``/``terminate`` lifecycle owned by whoever built it.
"""

import threading
from dataclasses import dataclass
from pathlib import Path

import pytesseract
from PIL import Image

from batchdoc.errors import RecoveryFailure
from batchdoc.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BoundingBox:
    """Axis-aligned bounding box for a detected element."""

    x: int
    y: int
    width: int
    height: int


@dataclass
class OCRWord:
    """A single word extracted by OCR with position and confidence (0-100)."""

    text: str
    bbox: BoundingBox
    confidence: float
    block_num: int
    line_num: int
    word_num: int


@dataclass
class OCRLine:
    """Words on the same Tesseract line, joined in reading order."""

    text: str
    bbox: BoundingBox
    confidence: float


@dataclass
class OCRResult:
    """Complete OCR result for one image."""

    text: str
    words: list[OCRWord]
    lines: list[OCRLine]
    language: str
    confidence: float


class TesseractEngine:
    """Wrapper around Tesseract OCR for document text extraction.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: Default OCR language code.
        psm: Tesseract page segmentation mode.
        timeout: Seconds before a Tesseract call is killed; 0 disables.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
        psm: int = 3,
        timeout: float = 0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang
        self.psm = psm
        self.timeout = timeout
        self._lock = threading.Lock()
        self._version: str | None = None

    @property
    def initialized(self) -> bool:
        return self._version is not None

    def initialize(self) -> str:
        """Verify the Tesseract binary is reachable.

        Returns:
            The Tesseract version string.

        Raises:
            RecoveryFailure: If Tesseract is not installed or not runnable.
        """
        if self._version is None:
            try:
                self._version = str(pytesseract.get_tesseract_version())
            except pytesseract.TesseractNotFoundError as exc:
                raise RecoveryFailure(f"OCR engine unavailable: {exc}") from exc
            logger.info("Tesseract %s initialized", self._version)
        return self._version

    def terminate(self) -> None:
        """Release the engine; the next ``recognize`` re-initializes it."""
        if self._version is not None:
            logger.info("Tesseract engine terminated")
        self._version = None

    def __enter__(self) -> "TesseractEngine":
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.terminate()

    def recognize(self, image_path: Path, lang: str | None = None) -> OCRResult:
        """Run OCR on an image file.

        Args:
            image_path: Image to recognize.
            lang: OCR language code. Defaults to the engine default.

        Returns:
            OCRResult with full text, words, lines and mean word confidence.

        Raises:
            RecoveryFailure: If the image cannot be read, Tesseract fails,
                or the call exceeds the configured timeout.
        """
        lang = lang or self.default_lang
        config = f"--psm {self.psm}"

        with self._lock:
            self.initialize()
            try:
                with Image.open(image_path) as pil_image:
                    text = pytesseract.image_to_string(
                        pil_image, lang=lang, config=config, timeout=self.timeout
                    )
                    data = pytesseract.image_to_data(
                        pil_image,
                        lang=lang,
                        config=config,
                        output_type=pytesseract.Output.DICT,
                        timeout=self.timeout,
                    )
            except RuntimeError as exc:
                # TesseractError subclasses RuntimeError; a killed subprocess is
                # reported as a bare RuntimeError mentioning the timeout.
                if "timeout" in str(exc).lower():
                    raise RecoveryFailure(
                        f"OCR extraction failed: timed out after {self.timeout}s"
                    ) from exc
                raise RecoveryFailure(f"OCR extraction failed: {exc}") from exc
            except OSError as exc:
                raise RecoveryFailure(f"OCR extraction failed: {exc}") from exc

        words = self._parse_words(data)
        lines = self._group_lines(words, data)
        avg_conf = sum(w.confidence for w in words) / len(words) if words else 0.0

        logger.info(
            "OCR extracted %d words in %d lines with average confidence %.1f",
            len(words),
            len(lines),
            avg_conf,
        )
        return OCRResult(
            text=text,
            words=words,
            lines=lines,
            language=lang,
            confidence=avg_conf,
        )

    def _parse_words(self, data: dict) -> list[OCRWord]:
        """Convert pytesseract's column dict into word records.

        Entries with an empty string or negative confidence are structural
        rows (pages, blocks, lines) rather than words and are skipped.
        """
        words: list[OCRWord] = []
        for i in range(len(data["text"])):
            conf = float(data["conf"][i])
            word_text = str(data["text"][i]).strip()
            if conf < 0 or not word_text:
                continue
            words.append(
                OCRWord(
                    text=word_text,
                    bbox=BoundingBox(
                        x=data["left"][i],
                        y=data["top"][i],
                        width=data["width"][i],
                        height=data["height"][i],
                    ),
                    confidence=conf,
                    block_num=data["block_num"][i],
                    line_num=data["line_num"][i],
                    word_num=data["word_num"][i],
                )
            )
        return words

    def _group_lines(self, words: list[OCRWord], data: dict) -> list[OCRLine]:
        """Group words sharing a (block, paragraph, line) key into lines."""
        par_nums = data.get("par_num")
        groups: dict[tuple[int, int, int], list[OCRWord]] = {}
        word_index = 0
        for i in range(len(data["text"])):
            if float(data["conf"][i]) < 0 or not str(data["text"][i]).strip():
                continue
            word = words[word_index]
            word_index += 1
            par = par_nums[i] if par_nums else 0
            groups.setdefault((word.block_num, par, word.line_num), []).append(word)

        lines: list[OCRLine] = []
        for line_words in groups.values():
            x_min = min(w.bbox.x for w in line_words)
            y_min = min(w.bbox.y for w in line_words)
            x_max = max(w.bbox.x + w.bbox.width for w in line_words)
            y_max = max(w.bbox.y + w.bbox.height for w in line_words)
            lines.append(
                OCRLine(
                    text=" ".join(w.text for w in line_words),
                    bbox=BoundingBox(x_min, y_min, x_max - x_min, y_max - y_min),
                    confidence=sum(w.confidence for w in line_words) / len(line_words),
                )
            )
        return lines
