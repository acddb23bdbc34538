"""Structured records produced by the type-specific extractors."""

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from batchdoc.classification.document_classifier import DocumentType

if TYPE_CHECKING:
    from batchdoc.ocr.text_recovery import RecoveredText

MAX_BOOSTED_CONFIDENCE = 0.95
MAX_UNBOOSTED_CONFIDENCE = 0.9


@dataclass
class Measurement:
    """A numeric reading with its unit."""

    value: float
    unit: str
    confidence: float | None = None


@dataclass
class OrganicStatus:
    value: bool
    confidence: float


@dataclass
class StructuredRecord:
    """Fields shared by every structured record.

    ``entities`` holds the serialized entity bag and ``entity_confidence``
    its weighted mean confidence. ``raw_dates`` maps a date field name to
    the text it was parsed from, including dates that could not be
    normalized (the field itself is then ``None``).
    """

    document_type: DocumentType = DocumentType.UNKNOWN
    confidence: float = 0.0
    entities: dict[str, Any] = field(default_factory=dict)
    raw_dates: dict[str, str] = field(default_factory=dict)
    entity_confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_columns(self) -> dict[str, Any]:
        """Values for the flat columns of an extraction record."""
        return {}


@dataclass
class LabReportRecord(StructuredRecord):
    document_type: DocumentType = DocumentType.LAB_REPORT
    moisture_level: Measurement | None = None
    pesticide_content: Measurement | None = None
    organic_status: OrganicStatus | None = None
    lab_name: str | None = None
    test_date: str | None = None
    batch_number: str | None = None
    heavy_metals: dict[str, Measurement] | None = None
    microbial_count: Measurement | None = None
    ph_level: Measurement | None = None
    aflatoxin: Measurement | None = None

    def to_columns(self) -> dict[str, Any]:
        return {
            "moisture_level": self.moisture_level.value if self.moisture_level else None,
            "pesticide_content": (
                self.pesticide_content.value if self.pesticide_content else None
            ),
            "pesticide_unit": self.pesticide_content.unit if self.pesticide_content else None,
            "organic_status": self.organic_status.value if self.organic_status else None,
            "lab_name": self.lab_name,
            "test_date": self.test_date,
            "batch_number": self.batch_number,
        }


@dataclass
class PackagingRecord(StructuredRecord):
    document_type: DocumentType = DocumentType.PACKAGING
    iso_codes: list[str] | None = None
    organic_certified: bool | None = None
    certification_logos: list[str] | None = None
    batch_number: str | None = None
    manufacturing_date: str | None = None
    expiry_date: str | None = None
    product_name: str | None = None
    net_weight: Measurement | None = None
    ingredients: list[str] | None = None
    storage_instructions: str | None = None

    def to_columns(self) -> dict[str, Any]:
        return {
            "organic_status": self.organic_certified,
            "iso_codes": self.iso_codes,
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date,
        }


@dataclass
class CertificateRecord(StructuredRecord):
    document_type: DocumentType = DocumentType.CERTIFICATE
    certificate_type: str | None = None
    certificate_number: str | None = None
    iso_codes: list[str] | None = None
    issued_to: str | None = None
    issued_by: str | None = None
    issue_date: str | None = None
    expiry_date: str | None = None
    valid: bool | None = None
    scope: str | None = None
    accreditation_body: str | None = None
    accreditation_number: str | None = None

    def to_columns(self) -> dict[str, Any]:
        return {
            "iso_codes": self.iso_codes,
            "certificate_number": self.certificate_number,
            "expiry_date": self.expiry_date,
        }


class DocumentExtractor(Protocol):
    """Contract shared by the type-specific extractors."""

    def extract(
        self, text: str, recovered: "RecoveredText | None" = None
    ) -> StructuredRecord: ...


def score_fields(
    record: StructuredRecord,
    important_fields: tuple[str, ...],
    boost: float,
    boosted: bool,
) -> float:
    """Score a record by the share of important fields it filled.

    Args:
        record: Record to score.
        important_fields: Attribute names that count towards the score.
        boost: Amount added when a strong marker was found.
        boosted: Whether the strong marker was found.

    Returns:
        ``min(found/total + boost, 0.95)`` when boosted, else
        ``min(found/total, 0.9)``.
    """
    found = sum(1 for name in important_fields if getattr(record, name) is not None)
    base = found / len(important_fields)
    if boosted:
        return round(min(base + boost, MAX_BOOSTED_CONFIDENCE), 4)
    return round(min(base, MAX_UNBOOSTED_CONFIDENCE), 4)
