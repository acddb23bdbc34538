"""Document type classification from filenames and recovered text.

Two independent heuristics are combined: regex families matched against
the lowercased filename, and fixed keyword weights summed over the
lowercased content. An unambiguous filename short-circuits content
scoring, so the classifier can run before any text has been recovered.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from batchdoc.utils.logger import get_logger

logger = get_logger(__name__)


class DocumentType(StrEnum):
    """Closed set of supporting-document types."""

    LAB_REPORT = "lab_report"
    PACKAGING = "packaging"
    CERTIFICATE = "certificate"
    FARMING_DATA = "farming_data"
    UNKNOWN = "unknown"


class ClassificationMethod(StrEnum):
    FILENAME = "filename"
    CONTENT = "content"


@dataclass(frozen=True)
class Classification:
    """A document type with the confidence and heuristic that produced it."""

    type: DocumentType
    confidence: float
    method: ClassificationMethod
    evidence: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "method": self.method.value,
            "evidence": self.evidence,
        }


FILENAME_CONFIDENCE = 0.85
UNMATCHED_FILENAME_CONFIDENCE = 0.3
SHORT_TEXT_CONFIDENCE = 0.2
MIN_CONTENT_LENGTH = 50
MAX_CONTENT_CONFIDENCE = 0.95
FILENAME_SHORT_CIRCUIT = 0.8
CONTENT_ACCEPT = 0.7

# Checked in order; the first family with any match wins.
_FILENAME_PATTERNS: dict[DocumentType, list[str]] = {
    DocumentType.LAB_REPORT: [
        r"lab.*report",
        r"test.*report",
        r"analysis.*report",
        r"quality.*test",
        r"laboratory",
        r"assay",
    ],
    DocumentType.PACKAGING: [
        r"package",
        r"packaging",
        r"label",
        r"box",
        r"container",
    ],
    DocumentType.CERTIFICATE: [
        r"certificate",
        r"cert",
        r"certification",
        r"iso.*\d+",
        r"compliance",
    ],
    DocumentType.FARMING_DATA: [
        r"farm",
        r"harvest",
        r"crop",
        r"field.*data",
        r"agricultural",
    ],
}

_KEYWORD_WEIGHTS: dict[DocumentType, list[tuple[str, float]]] = {
    DocumentType.LAB_REPORT: [
        ("laboratory", 0.15),
        ("test result", 0.15),
        ("analysis", 0.1),
        ("moisture", 0.15),
        ("pesticide", 0.15),
        ("residue", 0.1),
        ("sample", 0.1),
        ("method", 0.05),
        ("tested by", 0.1),
        ("test date", 0.1),
        ("ppm", 0.1),
        ("mg/kg", 0.1),
    ],
    DocumentType.PACKAGING: [
        ("ingredients", 0.2),
        ("net weight", 0.15),
        ("manufactured", 0.15),
        ("expiry", 0.15),
        ("best before", 0.15),
        ("batch", 0.1),
        ("lot", 0.1),
        ("organic", 0.1),
        ("nutrition", 0.1),
        ("storage", 0.05),
    ],
    DocumentType.CERTIFICATE: [
        ("certificate", 0.2),
        ("certified", 0.15),
        ("certification", 0.15),
        ("iso ", 0.2),
        ("hereby certif", 0.2),
        ("valid until", 0.15),
        ("issued by", 0.1),
        ("accredited", 0.1),
        ("compliance", 0.1),
        ("standard", 0.05),
    ],
    DocumentType.FARMING_DATA: [
        ("harvest", 0.15),
        ("crop", 0.15),
        ("field", 0.1),
        ("farm", 0.15),
        ("yield", 0.15),
        ("planting", 0.1),
        ("irrigation", 0.1),
        ("fertilizer", 0.1),
        ("soil", 0.1),
        ("season", 0.05),
    ],
}


class DocumentClassifier:
    """Stateless document type classifier.

    Every method is a pure function of its arguments, so one instance can
    be shared freely between pipeline runs.
    """

    def __init__(self) -> None:
        self._filename_patterns = {
            doc_type: [(pattern, re.compile(pattern)) for pattern in patterns]
            for doc_type, patterns in _FILENAME_PATTERNS.items()
        }

    def classify(self, filename: str, text: str = "") -> Classification:
        """Classify a document from its filename and optional content.

        A filename match above 0.8 is returned without looking at the
        text. Otherwise a content result above 0.7 wins, and failing
        that the more confident of the two is returned, with ties going
        to the filename result.

        Args:
            filename: Declared (original) filename of the document.
            text: Recovered document text, if available.

        Returns:
            The chosen classification.
        """
        by_filename = self.classify_by_filename(filename)
        if by_filename.confidence > FILENAME_SHORT_CIRCUIT:
            result = by_filename
        else:
            by_content = self.classify_by_content(text)
            if by_content.confidence > CONTENT_ACCEPT:
                result = by_content
            elif by_content.confidence > by_filename.confidence:
                result = by_content
            else:
                result = by_filename

        logger.debug(
            "Classified %s as %s (%.2f via %s)",
            filename,
            result.type,
            result.confidence,
            result.method,
        )
        return result

    def quick_classify(self, filename: str) -> Classification:
        """Classify from the filename alone, before text recovery."""
        return self.classify_by_filename(filename)

    def classify_by_filename(self, filename: str) -> Classification:
        """Match the lowercased filename against per-type regex families.

        Args:
            filename: Filename to inspect.

        Returns:
            The first matching type at 0.85, or ``unknown`` at 0.3.
        """
        lowered = filename.lower()
        for doc_type, patterns in self._filename_patterns.items():
            for source, pattern in patterns:
                if pattern.search(lowered):
                    return Classification(
                        type=doc_type,
                        confidence=FILENAME_CONFIDENCE,
                        method=ClassificationMethod.FILENAME,
                        evidence={"pattern": source},
                    )

        return Classification(
            type=DocumentType.UNKNOWN,
            confidence=UNMATCHED_FILENAME_CONFIDENCE,
            method=ClassificationMethod.FILENAME,
        )

    def classify_by_content(self, text: str) -> Classification:
        """Score recovered text with fixed keyword weights per type.

        Text shorter than 50 characters is not scored and yields
        ``unknown`` at 0.2.

        Args:
            text: Recovered document text.

        Returns:
            The best scoring type with confidence ``min(score, 0.95)``.
        """
        if not text or len(text) < MIN_CONTENT_LENGTH:
            return Classification(
                type=DocumentType.UNKNOWN,
                confidence=SHORT_TEXT_CONFIDENCE,
                method=ClassificationMethod.CONTENT,
            )

        scores = self.score_content(text)
        best_type = DocumentType.UNKNOWN
        best_score = 0.0
        for doc_type, score in scores.items():
            if score > best_score:
                best_type, best_score = doc_type, score

        return Classification(
            type=best_type,
            confidence=min(best_score, MAX_CONTENT_CONFIDENCE),
            method=ClassificationMethod.CONTENT,
            evidence={"scores": {t.value: s for t, s in scores.items()}},
        )

    def score_content(self, text: str) -> dict[DocumentType, float]:
        """Sum keyword weights present in the text, capped at 1.0 per type."""
        lowered = text.lower()
        scores: dict[DocumentType, float] = {}
        for doc_type, keywords in _KEYWORD_WEIGHTS.items():
            total = sum(weight for term, weight in keywords if term in lowered)
            # Rounded so sums of the fixed weights compare exactly at thresholds.
            scores[doc_type] = round(min(total, 1.0), 4)
        return scores
