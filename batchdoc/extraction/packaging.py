"""Structured extraction for product packaging photos and labels."""

import re

from batchdoc.ocr.text_recovery import RecoveredText
from batchdoc.utils.logger import get_logger

from .dates import parse_date
from .entity_extractor import Entity, EntityBag, EntityExtractor, EntityKind, serialize_bag
from .records import Measurement, PackagingRecord, score_fields

logger = get_logger(__name__)

IMPORTANT_FIELDS = (
    "iso_codes",
    "batch_number",
    "manufacturing_date",
    "expiry_date",
    "product_name",
    "net_weight",
)
CERTIFICATION_BOOST = 0.10

CERTIFICATION_LOGOS = (
    "USDA Organic",
    "EU Organic",
    "Fair Trade",
    "Rainforest Alliance",
    "Non-GMO",
    "Kosher",
    "Halal",
    "Vegan",
    "Gluten Free",
    "BRC",
    "HACCP",
    "GMP",
)
_ORGANIC_KEYWORDS = (
    "usda organic",
    "eu organic",
    "certified organic",
    "organic certified",
    "100% organic",
)

_MANUFACTURING_PATTERNS = [
    re.compile(
        r"\b(?:mfg|mfd|manufactured|production)\b(?!\s*by\b)\s*(?:date|on)?\s*:?\s*([^\n]+)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:made|packed)\s*(?:on)?\s*:\s*([^\n]+)", re.IGNORECASE),
]
_EXPIRY_PATTERNS = [
    re.compile(
        r"\b(?:exp|expiry|expiration|best\s*before|use\s*by)\b\s*(?:date)?\s*:?\s*([^\n]+)",
        re.IGNORECASE,
    ),
]
_PRODUCT_NAME_PATTERNS = [
    re.compile(r"\b(?i:product)(?:\s+(?i:name))?\s*:\s*([A-Z][^\n]+)"),
    re.compile(r"^([A-Z][A-Za-z ]+)$", re.MULTILINE),
]
_WEIGHT = r"(\d+\.?\d*)\s*(kg|g|lb|oz|ml|l)\b"
_NET_WEIGHT_PATTERNS = [
    re.compile(r"net\s*(?:weight|wt\.?|content)\s*:?\s*" + _WEIGHT, re.IGNORECASE),
    re.compile(_WEIGHT + r"\s*net", re.IGNORECASE),
    re.compile(r"weight\s*:?\s*" + _WEIGHT, re.IGNORECASE),
]
# Continuation lines of an ingredient list do not start with a capital.
_INGREDIENTS_PATTERN = re.compile(r"(?i:ingredients)\s*:?\s*([^\n]+(?:\n[^A-Z\n][^\n]+)*)")
_STORAGE_PATTERN = re.compile(
    r"storage\s*(?:instructions|conditions)?\s*:?\s*([^\n]+)", re.IGNORECASE
)


class PackagingExtractor:
    """Maps an entity bag and label text onto a PackagingRecord.

    Args:
        entity_extractor: Shared recognizer catalog. A new one is created
            if not given.
    """

    def __init__(self, entity_extractor: EntityExtractor | None = None) -> None:
        self.entity_extractor = entity_extractor or EntityExtractor()

    def extract(self, text: str, recovered: RecoveredText | None = None) -> PackagingRecord:
        """Extract certification marks and product details from a label.

        Args:
            text: Recovered label text.
            recovered: Recovery metadata (unused by the field rules).

        Returns:
            Record with confidence from the important fields found, boosted
            when ISO codes or certification logos were detected.
        """
        bag = self.entity_extractor.extract(text)
        record = PackagingRecord(
            entities=serialize_bag(bag),
            entity_confidence=self.entity_extractor.bag_confidence(bag),
        )

        iso_codes = bag.get(EntityKind.ISO_CODE)
        if iso_codes:
            record.iso_codes = list(dict.fromkeys(iso.value for iso in iso_codes))
        record.organic_certified = self.extract_organic_certification(bag, text)
        record.certification_logos = self.extract_certification_logos(text)
        batch = bag.get(EntityKind.BATCH_NUMBER)
        record.batch_number = batch.value if batch else None

        record.manufacturing_date = self._labelled_date(
            record, "manufacturing_date", _MANUFACTURING_PATTERNS, text
        )
        record.expiry_date = self._labelled_date(record, "expiry_date", _EXPIRY_PATTERNS, text)
        self._positional_dates(bag, record)

        record.product_name = self.extract_product_name(text)
        record.net_weight = self.extract_net_weight(text)
        record.ingredients = self.extract_ingredients(text)
        record.storage_instructions = self.extract_storage_instructions(text)

        record.confidence = score_fields(
            record,
            IMPORTANT_FIELDS,
            CERTIFICATION_BOOST,
            boosted=bool(record.iso_codes or record.certification_logos),
        )
        logger.info("Packaging extraction confidence %.2f", record.confidence)
        return record

    def extract_organic_certification(self, bag: EntityBag, text: str) -> bool | None:
        organic = bag.get(EntityKind.ORGANIC_STATUS)
        if organic:
            return organic.value
        lowered = text.lower()
        if any(keyword in lowered for keyword in _ORGANIC_KEYWORDS):
            return True
        return None

    def extract_certification_logos(self, text: str) -> list[str] | None:
        lowered = text.lower()
        found = [logo for logo in CERTIFICATION_LOGOS if logo.lower() in lowered]
        return found or None

    def extract_product_name(self, text: str) -> str | None:
        """Use an explicit ``Product:`` label, else the first capitalized line."""
        for pattern in _PRODUCT_NAME_PATTERNS:
            match = pattern.search(text)
            if match:
                name = match.group(1).strip()
                if 3 < len(name) < 100:
                    return name
        return None

    def extract_net_weight(self, text: str) -> Measurement | None:
        for pattern in _NET_WEIGHT_PATTERNS:
            match = pattern.search(text)
            if match:
                return Measurement(float(match.group(1)), match.group(2).lower())
        return None

    def extract_ingredients(self, text: str) -> list[str] | None:
        """Split the text after an ``Ingredients:`` label on commas and semicolons."""
        match = _INGREDIENTS_PATTERN.search(text)
        if not match:
            return None
        tokens = (token.strip() for token in re.split(r"[,;]", match.group(1)))
        ingredients = [token for token in tokens if 0 < len(token) < 50]
        return ingredients or None

    def extract_storage_instructions(self, text: str) -> str | None:
        match = _STORAGE_PATTERN.search(text)
        if match:
            return match.group(1).strip() or None
        return None

    @staticmethod
    def _labelled_date(
        record: PackagingRecord,
        field_name: str,
        patterns: list[re.Pattern[str]],
        text: str,
    ) -> str | None:
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                raw = match.group(1).strip()
                record.raw_dates[field_name] = raw
                return parse_date(raw)
        return None

    @staticmethod
    def _positional_dates(bag: EntityBag, record: PackagingRecord) -> None:
        """Fill unlabelled date fields from the recognized date list.

        Dates already claimed by a label are skipped. The first remaining
        plain date is taken as manufacturing and the next one as expiry.
        """
        dates: list[Entity] = bag.get(EntityKind.DATE) or []
        claimed = list(record.raw_dates.values())
        unclaimed = [
            d
            for d in dates
            if d.label is None and not any(d.source_span in raw for raw in claimed)
        ]

        if "manufacturing_date" not in record.raw_dates and unclaimed:
            chosen = unclaimed.pop(0)
            record.raw_dates["manufacturing_date"] = chosen.source_span
            record.manufacturing_date = chosen.value

        if "expiry_date" not in record.raw_dates and unclaimed:
            chosen = unclaimed[0]
            record.raw_dates["expiry_date"] = chosen.source_span
            record.expiry_date = chosen.value
