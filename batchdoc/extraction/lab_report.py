"""Structured extraction for laboratory test reports."""

import math
import re

from batchdoc.ocr.text_recovery import RecoveredText
from batchdoc.utils.logger import get_logger

from .entity_extractor import Entity, EntityBag, EntityExtractor, EntityKind, serialize_bag
from .records import LabReportRecord, Measurement, OrganicStatus, score_fields

logger = get_logger(__name__)

IMPORTANT_FIELDS = (
    "moisture_level",
    "pesticide_content",
    "organic_status",
    "lab_name",
    "test_date",
    "batch_number",
)
QUALITY_METRIC_BOOST = 0.10

HEAVY_METALS = ("lead", "mercury", "cadmium", "arsenic", "chromium")
PESTICIDE_UNITS = ("ppm", "ppb", "mg/kg")

_HEAVY_METAL_PATTERNS = {
    metal: re.compile(metal + r"\s*:?\s*(\d+\.?\d*)\s*(ppm|ppb|mg/kg)", re.IGNORECASE)
    for metal in HEAVY_METALS
}
_MICROBIAL_PATTERNS = [
    re.compile(
        r"(?:total\s*)?(?:microbial|bacterial)\s*count\s*:?\s*(\d+\.?\d*(?:e[+-]?\d+)?)"
        r"\s*(cfu/g|cfu/ml)?",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:total\s*)?plate\s*count\s*:?\s*(\d+\.?\d*(?:e[+-]?\d+)?)\s*(cfu/g|cfu/ml)?",
        re.IGNORECASE,
    ),
]
_PH_PATTERN = re.compile(r"\bph\s*(?:level|value)?\s*:?\s*(-?\d+\.?\d*)", re.IGNORECASE)
_AFLATOXIN_PATTERN = re.compile(
    r"aflatoxin\s*(?:b1|total)?\s*:?\s*(\d+\.?\d*)\s*(ppb|μg/kg|ug/kg)", re.IGNORECASE
)


class LabReportExtractor:
    """Maps an entity bag and report text onto a LabReportRecord.

    Args:
        entity_extractor: Shared recognizer catalog. A new one is created
            if not given.
    """

    def __init__(self, entity_extractor: EntityExtractor | None = None) -> None:
        self.entity_extractor = entity_extractor or EntityExtractor()

    def extract(self, text: str, recovered: RecoveredText | None = None) -> LabReportRecord:
        """Extract quality metrics and report metadata.

        Args:
            text: Recovered report text.
            recovered: Recovery metadata (unused by the field rules).

        Returns:
            Record with confidence from the important fields found, boosted
            when moisture or pesticide content was measured.
        """
        bag = self.entity_extractor.extract(text)
        record = LabReportRecord(
            entities=serialize_bag(bag),
            entity_confidence=self.entity_extractor.bag_confidence(bag),
        )

        record.moisture_level = self._measurement(bag.get(EntityKind.MOISTURE_LEVEL), "%")
        record.pesticide_content = self._pesticide_content(bag)
        organic = bag.get(EntityKind.ORGANIC_STATUS)
        if organic:
            record.organic_status = OrganicStatus(organic.value, organic.confidence)
        record.lab_name = self._lab_name(bag)
        record.test_date = self._test_date(bag, record)
        batch = bag.get(EntityKind.BATCH_NUMBER)
        record.batch_number = batch.value if batch else None

        record.heavy_metals = self.extract_heavy_metals(text)
        record.microbial_count = self.extract_microbial_count(text)
        record.ph_level = self.extract_ph_level(text)
        record.aflatoxin = self.extract_aflatoxin(text)

        record.confidence = score_fields(
            record,
            IMPORTANT_FIELDS,
            QUALITY_METRIC_BOOST,
            boosted=record.moisture_level is not None or record.pesticide_content is not None,
        )
        logger.info("Lab report extraction confidence %.2f", record.confidence)
        return record

    def extract_heavy_metals(self, text: str) -> dict[str, Measurement] | None:
        results: dict[str, Measurement] = {}
        for metal, pattern in _HEAVY_METAL_PATTERNS.items():
            match = pattern.search(text)
            if match:
                results[metal] = Measurement(float(match.group(1)), match.group(2).lower())
        return results or None

    def extract_microbial_count(self, text: str) -> Measurement | None:
        """Find a total microbial or plate count, reported in cfu/g."""
        for pattern in _MICROBIAL_PATTERNS:
            match = pattern.search(text)
            if match:
                value = float(match.group(1))
                if math.isfinite(value):
                    return Measurement(value, "cfu/g")
        return None

    def extract_ph_level(self, text: str) -> Measurement | None:
        match = _PH_PATTERN.search(text)
        if match:
            value = float(match.group(1))
            if 0 <= value <= 14:
                return Measurement(value, "pH")
        return None

    def extract_aflatoxin(self, text: str) -> Measurement | None:
        match = _AFLATOXIN_PATTERN.search(text)
        if match:
            return Measurement(float(match.group(1)), match.group(2).lower())
        return None

    @staticmethod
    def _measurement(entity: Entity | None, default_unit: str) -> Measurement | None:
        if entity is None:
            return None
        return Measurement(entity.value, entity.unit or default_unit, entity.confidence)

    def _pesticide_content(self, bag: EntityBag) -> Measurement | None:
        entity = bag.get(EntityKind.PESTICIDE_CONTENT)
        if entity:
            return self._measurement(entity, "ppm")

        # Fall back to any residue-style unit in the text.
        for number in bag.get(EntityKind.NUMBER_WITH_UNIT) or []:
            if number.unit.lower() in PESTICIDE_UNITS:
                return Measurement(number.value, number.unit.lower(), 0.6)
        return None

    @staticmethod
    def _lab_name(bag: EntityBag) -> str | None:
        lab = bag.get(EntityKind.LAB_NAME)
        if lab:
            return lab.value
        organizations = bag.get(EntityKind.ORGANIZATION)
        if organizations:
            return organizations[0].value
        return None

    @staticmethod
    def _test_date(bag: EntityBag, record: LabReportRecord) -> str | None:
        """Prefer a ``Test Date:`` labelled date over the first date found."""
        dates: list[Entity] = bag.get(EntityKind.DATE) or []
        if not dates:
            return None
        chosen = next((d for d in dates if d.label == "test_date"), dates[0])
        record.raw_dates["test_date"] = chosen.source_span
        return chosen.value
