"""Pattern-based entity recognition over recovered document text.

Each recognizer is an independent regex scan: recognizers share no state,
never raise for a missing pattern, and discard numeric matches that fall
outside a plausible range. The extractor returns the union of all
recognizer outputs keyed by entity kind.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from batchdoc.utils.logger import get_logger

from .dates import parse_date

logger = get_logger(__name__)


class EntityKind(StrEnum):
    """Kinds of facts the recognizers can detect."""

    MOISTURE_LEVEL = "moisture_level"
    PESTICIDE_CONTENT = "pesticide_content"
    ORGANIC_STATUS = "organic_status"
    ISO_CODE = "iso_code"
    DATE = "date"
    LAB_NAME = "lab_name"
    BATCH_NUMBER = "batch_number"
    CERTIFICATE_NUMBER = "certificate_number"
    ORGANIZATION = "organization"
    NUMBER_WITH_UNIT = "generic_number_with_unit"


LIST_KINDS = frozenset(
    {
        EntityKind.ISO_CODE,
        EntityKind.DATE,
        EntityKind.ORGANIZATION,
        EntityKind.NUMBER_WITH_UNIT,
    }
)


@dataclass(frozen=True)
class Entity:
    """One recognized fact with its own confidence (0-1).

    ``label`` is set for dates found behind an explicit label such as
    ``Test Date:`` (``test_date``) or ``Expiry Date:`` (``expiry_date``).
    """

    kind: EntityKind
    value: Any
    confidence: float
    source_span: str
    unit: str | None = None
    label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "value": self.value,
            "unit": self.unit,
            "confidence": self.confidence,
            "source_span": self.source_span,
            "label": self.label,
        }


EntityBag = dict[EntityKind, Entity | list[Entity] | None]

_NUMBER = r"(-?\d+\.?\d*)"

_MOISTURE_PATTERNS = [
    re.compile(r"moisture\s*(?:level|content|%)?\s*:?\s*" + _NUMBER + r"\s*%", re.IGNORECASE),
    re.compile(r"moisture\s*(?:level|content)?\s*:?\s*" + _NUMBER, re.IGNORECASE),
    re.compile(_NUMBER + r"\s*%\s*moisture", re.IGNORECASE),
    re.compile(r"water\s*content\s*:?\s*" + _NUMBER + r"\s*%", re.IGNORECASE),
]

_PESTICIDE_UNITS = r"(ppm|mg/kg|ppb)"
_PESTICIDE_PATTERNS = [
    re.compile(
        r"pesticide\s*(?:residue|content|level)?\s*:?\s*" + _NUMBER + r"\s*" + _PESTICIDE_UNITS,
        re.IGNORECASE,
    ),
    re.compile(r"residue\s*:?\s*" + _NUMBER + r"\s*" + _PESTICIDE_UNITS, re.IGNORECASE),
    re.compile(_NUMBER + r"\s*" + _PESTICIDE_UNITS + r"\s*pesticide", re.IGNORECASE),
]

_ORGANIC_KEYWORDS = (
    "organic certified",
    "certified organic",
    "usda organic",
    "eu organic",
    "organic status: yes",
    "organic: yes",
    "organic certification",
)
_NON_ORGANIC_KEYWORDS = (
    "not organic",
    "non-organic",
    "conventional",
    "organic status: no",
    "organic: no",
)

_ISO_PATTERN = re.compile(r"ISO\s*(\d{4,5}(?:[-:]\d{4})?)", re.IGNORECASE)

_MONTH_NAME = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"
_DATE_PATTERNS = [
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
    re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"),
    re.compile(r"\b" + _MONTH_NAME + r"\s+\d{1,2},?\s+\d{4}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}\s+" + _MONTH_NAME + r",?\s+\d{4}\b", re.IGNORECASE),
]
_LABELLED_DATE_PATTERNS = [
    ("test_date", re.compile(r"test\s*date\s*:?\s*([^\n]+)", re.IGNORECASE)),
    ("expiry_date", re.compile(r"expir(?:y|ation)\s*date\s*:?\s*([^\n]+)", re.IGNORECASE)),
]

# Name classes use a literal space so a match never runs onto the next line.
_LAB_NAME_PATTERNS = [
    re.compile(r"\b(?i:laboratory|lab)(?i:\s+name)?\s*:\s*([A-Z][A-Za-z &]+)"),
    re.compile(r"(?i:tested\s*by)\s*:?\s*([A-Z][A-Za-z &]+)"),
    re.compile(r"([A-Z][A-Za-z &]+(?:Lab|Laboratory|Testing|Services))"),
]

_BATCH_PATTERNS = [
    re.compile(r"batch\s*(?:number|no\.?|#)\s*:?\s*([A-Z0-9\-]+)", re.IGNORECASE),
    re.compile(r"lot\s*(?:number|no\.?|#)\s*:?\s*([A-Z0-9\-]+)", re.IGNORECASE),
    re.compile(r"batch\s*:?\s*(?=[A-Z0-9\-]*\d)([A-Z0-9\-]{4,})", re.IGNORECASE),
]

_CERTIFICATE_NUMBER_PATTERNS = [
    re.compile(
        r"certificate\s*(?:number|no\.?|#)\s*:?\s*(?=[A-Z0-9\-/]*\d)([A-Z0-9\-/]+)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\bcert\.?\s*(?:number|no\.?|#)\s*:?\s*(?=[A-Z0-9\-/]*\d)([A-Z0-9\-/]+)",
        re.IGNORECASE,
    ),
    re.compile(
        r"registration\s*(?:number|no\.?|#)\s*:?\s*(?=[A-Z0-9\-/]*\d)([A-Z0-9\-/]+)",
        re.IGNORECASE,
    ),
]

_ORGANIZATION_PATTERNS = [
    re.compile(
        r"([A-Z][A-Za-z &]+(?:Laboratory|Lab|Testing|Services|Inc|LLC|Ltd|Corporation|Corp))"
    ),
    re.compile(r"(?i:issued\s+by|tested\s+by|certified\s+by)\s*:?\s*([A-Z][A-Za-z &]+)"),
]

_NUMBER_WITH_UNIT_PATTERN = re.compile(r"(\d+\.?\d*)\s*([a-zA-Z%/]+)")

# Weights used to blend present entity confidences into one audit score.
_CONFIDENCE_WEIGHTS: dict[EntityKind, float] = {
    EntityKind.MOISTURE_LEVEL: 0.2,
    EntityKind.PESTICIDE_CONTENT: 0.2,
    EntityKind.ORGANIC_STATUS: 0.15,
    EntityKind.ISO_CODE: 0.15,
    EntityKind.DATE: 0.1,
    EntityKind.LAB_NAME: 0.1,
    EntityKind.BATCH_NUMBER: 0.1,
}


class EntityExtractor:
    """Runs the fixed recognizer catalog over a document's text."""

    def extract(self, text: str) -> EntityBag:
        """Run every recognizer over the text.

        Args:
            text: Recovered document text.

        Returns:
            Mapping with every entity kind as a key. Single-valued kinds map
            to an Entity or ``None``; list kinds map to a non-empty list
            or ``None``.
        """
        if not text:
            return {kind: None for kind in EntityKind}

        recognized: EntityBag = {
            EntityKind.MOISTURE_LEVEL: self.extract_moisture_level(text),
            EntityKind.PESTICIDE_CONTENT: self.extract_pesticide_content(text),
            EntityKind.ORGANIC_STATUS: self.extract_organic_status(text),
            EntityKind.ISO_CODE: self.extract_iso_codes(text),
            EntityKind.DATE: self.extract_dates(text),
            EntityKind.LAB_NAME: self.extract_lab_name(text),
            EntityKind.BATCH_NUMBER: self.extract_batch_number(text),
            EntityKind.CERTIFICATE_NUMBER: self.extract_certificate_number(text),
            EntityKind.ORGANIZATION: self.extract_organizations(text),
            EntityKind.NUMBER_WITH_UNIT: self.extract_numbers_with_units(text),
        }
        bag: EntityBag = {
            kind: (value or None) if kind in LIST_KINDS else value
            for kind, value in recognized.items()
        }
        logger.debug(
            "Recognized entities: %s",
            ", ".join(kind.value for kind, found in bag.items() if found),
        )
        return bag

    def extract_moisture_level(self, text: str) -> Entity | None:
        """Find a moisture percentage in [0, 100].

        Each pattern contributes its first match; an out-of-range value
        moves on to the next pattern.
        """
        for pattern in _MOISTURE_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            value = float(match.group(1))
            if 0 <= value <= 100:
                return Entity(
                    kind=EntityKind.MOISTURE_LEVEL,
                    value=value,
                    unit="%",
                    confidence=0.85,
                    source_span=match.group(0),
                )
            logger.debug("Discarding out-of-range moisture value %s", value)
        return None

    def extract_pesticide_content(self, text: str) -> Entity | None:
        """Find a non-negative pesticide residue in ppm, mg/kg or ppb."""
        for pattern in _PESTICIDE_PATTERNS:
            for match in pattern.finditer(text):
                value = float(match.group(1))
                if value >= 0:
                    return Entity(
                        kind=EntityKind.PESTICIDE_CONTENT,
                        value=value,
                        unit=match.group(2).lower(),
                        confidence=0.8,
                        source_span=match.group(0),
                    )
        return None

    def extract_organic_status(self, text: str) -> Entity | None:
        """Detect organic or non-organic status from fixed keywords.

        Explicit positive keywords are checked before negative ones; a bare
        mention of "organic" yields a weak positive at 0.6.
        """
        lowered = text.lower()
        for keyword in _ORGANIC_KEYWORDS:
            if keyword in lowered:
                return Entity(EntityKind.ORGANIC_STATUS, True, 0.9, keyword)
        for keyword in _NON_ORGANIC_KEYWORDS:
            if keyword in lowered:
                return Entity(EntityKind.ORGANIC_STATUS, False, 0.9, keyword)
        if "organic" in lowered:
            return Entity(EntityKind.ORGANIC_STATUS, True, 0.6, "organic mentioned")
        return None

    def extract_iso_codes(self, text: str) -> list[Entity]:
        return [
            Entity(
                kind=EntityKind.ISO_CODE,
                value=f"ISO {match.group(1)}",
                confidence=0.95,
                source_span=match.group(0),
            )
            for match in _ISO_PATTERN.finditer(text)
        ]

    def extract_dates(self, text: str) -> list[Entity]:
        """Find date literals in document order, then labelled dates.

        Literal matches that overlap an earlier match are dropped. Dates
        behind a ``Test Date:`` or ``Expiry Date:`` label are appended
        with the rest of their line as the raw text.
        """
        spans: list[tuple[int, int, str]] = []
        for pattern in _DATE_PATTERNS:
            for match in pattern.finditer(text):
                spans.append((match.start(), match.end(), match.group(0)))
        spans.sort()

        dates: list[Entity] = []
        last_end = -1
        for start, end, raw in spans:
            if start < last_end:
                continue
            last_end = end
            dates.append(Entity(EntityKind.DATE, parse_date(raw), 0.7, raw))

        for label, pattern in _LABELLED_DATE_PATTERNS:
            match = pattern.search(text)
            if match:
                raw = match.group(1).strip()
                dates.append(
                    Entity(EntityKind.DATE, parse_date(raw), 0.85, raw, label=label)
                )
        return dates

    def extract_lab_name(self, text: str) -> Entity | None:
        for pattern in _LAB_NAME_PATTERNS:
            match = pattern.search(text)
            if match:
                name = match.group(1).strip()
                if name:
                    return Entity(EntityKind.LAB_NAME, name, 0.75, match.group(0))
        return None

    def extract_batch_number(self, text: str) -> Entity | None:
        return self._first_identifier(text, _BATCH_PATTERNS, EntityKind.BATCH_NUMBER)

    def extract_certificate_number(self, text: str) -> Entity | None:
        return self._first_identifier(
            text, _CERTIFICATE_NUMBER_PATTERNS, EntityKind.CERTIFICATE_NUMBER
        )

    def extract_organizations(self, text: str) -> list[Entity]:
        """Collect organization-like names between 4 and 99 characters long."""
        organizations: list[Entity] = []
        for pattern in _ORGANIZATION_PATTERNS:
            for match in pattern.finditer(text):
                name = match.group(1).strip()
                if 3 < len(name) < 100:
                    organizations.append(
                        Entity(EntityKind.ORGANIZATION, name, 0.7, match.group(0))
                    )
        return organizations

    def extract_numbers_with_units(self, text: str) -> list[Entity]:
        return [
            Entity(
                kind=EntityKind.NUMBER_WITH_UNIT,
                value=float(match.group(1)),
                unit=match.group(2),
                confidence=0.5,
                source_span=match.group(0),
            )
            for match in _NUMBER_WITH_UNIT_PATTERN.finditer(text)
        ]

    def bag_confidence(self, bag: EntityBag) -> float:
        """Weighted mean confidence of the key entity kinds that were found.

        List-valued kinds contribute the confidence of their first entry.
        Returns 0.0 when none of the weighted kinds is present.
        """
        total_weight = 0.0
        weighted = 0.0
        for kind, weight in _CONFIDENCE_WEIGHTS.items():
            found = bag.get(kind)
            if not found:
                continue
            entity = found[0] if isinstance(found, list) else found
            total_weight += weight
            weighted += entity.confidence * weight
        return weighted / total_weight if total_weight else 0.0

    @staticmethod
    def _first_identifier(
        text: str, patterns: list[re.Pattern[str]], kind: EntityKind
    ) -> Entity | None:
        # Variants are tried in priority order; the first match wins.
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                return Entity(kind, match.group(1).strip(), 0.8, match.group(0))
        return None


def serialize_bag(bag: EntityBag) -> dict[str, Any]:
    """Convert an entity bag into JSON-serializable form."""
    serialized: dict[str, Any] = {}
    for kind, found in bag.items():
        if found is None:
            serialized[kind.value] = None
        elif isinstance(found, list):
            serialized[kind.value] = [entity.to_dict() for entity in found]
        else:
            serialized[kind.value] = found.to_dict()
    return serialized
