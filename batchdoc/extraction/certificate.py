"""Structured extraction for certification documents."""

import re

from batchdoc.ocr.text_recovery import RecoveredText
from batchdoc.utils.logger import get_logger

from .dates import parse_date
from .entity_extractor import Entity, EntityBag, EntityExtractor, EntityKind, serialize_bag
from .records import CertificateRecord, score_fields

logger = get_logger(__name__)

IMPORTANT_FIELDS = (
    "certificate_type",
    "certificate_number",
    "issued_to",
    "issued_by",
    "issue_date",
    "iso_codes",
)
IDENTIFIER_BOOST = 0.15

# Known standards, checked in order before the generic "Certificate of X".
CERTIFICATE_TYPES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"iso\s*22000", re.IGNORECASE), "ISO 22000 - Food Safety Management"),
    (re.compile(r"iso\s*9001", re.IGNORECASE), "ISO 9001 - Quality Management"),
    (re.compile(r"iso\s*14001", re.IGNORECASE), "ISO 14001 - Environmental Management"),
    (re.compile(r"haccp", re.IGNORECASE), "HACCP Certification"),
    (re.compile(r"organic\s*certif", re.IGNORECASE), "Organic Certification"),
    (re.compile(r"\bgmp\b", re.IGNORECASE), "GMP Certification"),
    (re.compile(r"\bbrc\b", re.IGNORECASE), "BRC Certification"),
    (re.compile(r"fssc\s*22000", re.IGNORECASE), "FSSC 22000"),
    (re.compile(r"global\s*g\.?a\.?p", re.IGNORECASE), "GlobalGAP"),
]
_GENERIC_TYPE = re.compile(r"certificate\s+of\s+([^\n]+)", re.IGNORECASE)

REVOCATION_KEYWORDS = (
    "revoked",
    "suspended",
    "cancelled",
    "canceled",
    "withdrawn",
    "expired",
    "invalid",
)
_VALID_WORD = re.compile(r"\bvalid\b", re.IGNORECASE)

_ISSUED_TO_PATTERNS = [
    re.compile(r"(?i:issued|granted|awarded)\s+(?i:to)\s*:?\s*([A-Z][^\n]+)"),
    re.compile(r"(?i:this\s+(?:is\s+to\s+)?certif(?:y|ies)\s+that)\s*:?\s*([A-Z][^\n]+)"),
    re.compile(r"(?i:certificate\s+holder)\s*:?\s*([A-Z][^\n]+)"),
]
_ISSUED_BY_PATTERNS = [
    re.compile(r"(?i:issued\s+by)\s*:?\s*([A-Z][^\n]+)"),
    re.compile(r"(?i:certifying\s+body)\s*:?\s*([A-Z][^\n]+)"),
    re.compile(r"(?i:certification\s+body)\s*:?\s*([A-Z][^\n]+)"),
]
_ISSUING_ORGANIZATION_HINTS = ("certif", "accredit", "bureau")
_ISSUE_DATE_PATTERNS = [
    re.compile(r"date\s+of\s+issue\s*:?\s*([^\n]+)", re.IGNORECASE),
    re.compile(
        r"\b(?:issue|issued|grant|granted)\b(?:\s+(?:date|on)\b\s*:?|\s*:)\s*([^\n]+)",
        re.IGNORECASE,
    ),
]
_EXPIRY_DATE_PATTERNS = [
    re.compile(
        r"(?:expir(?:y|es|ation)|valid\s+(?:until|through|till))\s*(?:date)?\s*:?\s*([^\n]+)",
        re.IGNORECASE,
    ),
]
_SCOPE_PATTERNS = [
    re.compile(
        r"scope\s*(?:of\s*certification)?\s*:?\s*([^\n]+(?:\n[^A-Z\n][^\n]+)*)",
        re.IGNORECASE,
    ),
    re.compile(r"certified\s+for\s*:?\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"activities\s+covered\s*:?\s*([^\n]+)", re.IGNORECASE),
]
_ACCREDITATION_BODY = re.compile(r"(?i:accredited\s+by)\s*:?\s*([A-Z][^\n]+)")
_ACCREDITATION_NUMBER = re.compile(
    r"accreditation\s*(?:number|no\.?|#)?\s*:?\s*(?=[A-Z0-9\-/]*\d)([A-Z0-9\-/]+)",
    re.IGNORECASE,
)
_TRAILING_CLAUSE = re.compile(r"\s*has\s+successfully.*", re.IGNORECASE)


class CertificateExtractor:
    """Maps an entity bag and certificate text onto a CertificateRecord.

    Args:
        entity_extractor: Shared recognizer catalog. A new one is created
            if not given.
    """

    def __init__(self, entity_extractor: EntityExtractor | None = None) -> None:
        self.entity_extractor = entity_extractor or EntityExtractor()

    def extract(
        self, text: str, recovered: RecoveredText | None = None
    ) -> CertificateRecord:
        """Extract certificate identity, parties, dates and validity.

        Args:
            text: Recovered certificate text.
            recovered: Recovery metadata (unused by the field rules).

        Returns:
            Record with confidence from the important fields found, boosted
            when ISO codes or a certificate number were detected.
        """
        bag = self.entity_extractor.extract(text)
        record = CertificateRecord(
            entities=serialize_bag(bag),
            entity_confidence=self.entity_extractor.bag_confidence(bag),
        )

        record.certificate_type = self.extract_certificate_type(text)
        number = bag.get(EntityKind.CERTIFICATE_NUMBER)
        record.certificate_number = number.value if number else None
        iso_codes = bag.get(EntityKind.ISO_CODE)
        if iso_codes:
            record.iso_codes = list(dict.fromkeys(iso.value for iso in iso_codes))

        record.issued_to = self.extract_issued_to(text)
        record.issued_by = self.extract_issued_by(bag, text)
        self._dates(bag, record, text)

        record.valid = self.check_validity(text)
        record.scope = self.extract_scope(text)
        record.accreditation_body, record.accreditation_number = self.extract_accreditation(text)

        record.confidence = score_fields(
            record,
            IMPORTANT_FIELDS,
            IDENTIFIER_BOOST,
            boosted=bool(record.iso_codes or record.certificate_number),
        )
        logger.info("Certificate extraction confidence %.2f", record.confidence)
        return record

    def extract_certificate_type(self, text: str) -> str | None:
        for pattern, name in CERTIFICATE_TYPES:
            if pattern.search(text):
                return name
        match = _GENERIC_TYPE.search(text)
        if match:
            return match.group(1).strip() or None
        return None

    def extract_issued_to(self, text: str) -> str | None:
        for pattern in _ISSUED_TO_PATTERNS:
            match = pattern.search(text)
            if match:
                name = _TRAILING_CLAUSE.sub("", match.group(1)).strip()
                if 3 < len(name) < 200:
                    return name
        return None

    def extract_issued_by(self, bag: EntityBag, text: str) -> str | None:
        """Use an explicit issuer label, else a certification-like organization."""
        for pattern in _ISSUED_BY_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).strip()

        for organization in bag.get(EntityKind.ORGANIZATION) or []:
            lowered = organization.value.lower()
            if any(hint in lowered for hint in _ISSUING_ORGANIZATION_HINTS):
                return organization.value
        return None

    def check_validity(self, text: str) -> bool | None:
        """Derive a tri-state validity flag.

        Revocation language makes the certificate invalid even when
        positive wording such as "valid until" is also present.

        Returns:
            ``False`` if revoked, ``True`` if explicitly valid or certified,
            ``None`` when the text says neither.
        """
        lowered = text.lower()
        if any(keyword in lowered for keyword in REVOCATION_KEYWORDS):
            return False
        if _VALID_WORD.search(text) or "hereby certif" in lowered or "is certified" in lowered:
            return True
        return None

    def extract_scope(self, text: str) -> str | None:
        for pattern in _SCOPE_PATTERNS:
            match = pattern.search(text)
            if match:
                scope = " ".join(match.group(1).split())
                if 10 < len(scope) < 500:
                    return scope
        return None

    def extract_accreditation(self, text: str) -> tuple[str | None, str | None]:
        """Return (accreditation_body, accreditation_number)."""
        body = _ACCREDITATION_BODY.search(text)
        number = _ACCREDITATION_NUMBER.search(text)
        return (
            body.group(1).strip() if body else None,
            number.group(1).strip() if number else None,
        )

    @staticmethod
    def _dates(bag: EntityBag, record: CertificateRecord, text: str) -> None:
        """Fill issue and expiry dates.

        A labelled date always wins, even if it cannot be normalized.
        Without a label the first recognized date is the issue date and
        the second is the expiry date.
        """
        for field_name, patterns in (
            ("issue_date", _ISSUE_DATE_PATTERNS),
            ("expiry_date", _EXPIRY_DATE_PATTERNS),
        ):
            for pattern in patterns:
                match = pattern.search(text)
                if match:
                    raw = match.group(1).strip()
                    record.raw_dates[field_name] = raw
                    setattr(record, field_name, parse_date(raw))
                    break

        dates: list[Entity] = bag.get(EntityKind.DATE) or []
        if "issue_date" not in record.raw_dates and dates:
            record.raw_dates["issue_date"] = dates[0].source_span
            record.issue_date = dates[0].value
        if "expiry_date" not in record.raw_dates and len(dates) > 1:
            chosen = next((d for d in dates if d.label == "expiry_date"), dates[1])
            record.raw_dates["expiry_date"] = chosen.source_span
            record.expiry_date = chosen.value
