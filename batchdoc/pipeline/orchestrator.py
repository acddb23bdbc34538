"""Extraction pipeline orchestration.

One run takes a document through quick classification, text recovery,
refined classification, type-specific extraction and persistence. Every
failure except a persistence failure ends the run with a ``failed``
record instead of an exception.
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from batchdoc.classification.document_classifier import (
    Classification,
    DocumentClassifier,
    DocumentType,
)
from batchdoc.errors import AttachmentNotFound, PersistenceFailure
from batchdoc.extraction.certificate import CertificateExtractor
from batchdoc.extraction.entity_extractor import EntityExtractor
from batchdoc.extraction.lab_report import LabReportExtractor
from batchdoc.extraction.packaging import PackagingExtractor
from batchdoc.extraction.records import DocumentExtractor
from batchdoc.ocr.text_recovery import TextRecoveryEngine
from batchdoc.storage.files import FileStorage
from batchdoc.storage.repository import ExtractionRepository
from batchdoc.utils.config import ExtractionConfig
from batchdoc.utils.logger import get_logger

logger = get_logger(__name__)

# Every document type routes to an extractor key. Farming data and
# unclassified documents have no dedicated extractor yet and go through
# the lab report rules.
EXTRACTOR_ROUTES: dict[DocumentType, str] = {
    DocumentType.LAB_REPORT: "lab_report",
    DocumentType.PACKAGING: "packaging",
    DocumentType.CERTIFICATE: "certificate",
    DocumentType.FARMING_DATA: "lab_report",
    DocumentType.UNKNOWN: "lab_report",
}


def build_extractor_table(
    entity_extractor: EntityExtractor | None = None,
) -> dict[str, DocumentExtractor]:
    """Create the type-specific extractors, sharing one recognizer catalog."""
    shared = entity_extractor or EntityExtractor()
    return {
        "lab_report": LabReportExtractor(shared),
        "packaging": PackagingExtractor(shared),
        "certificate": CertificateExtractor(shared),
    }


@dataclass
class ProcessResult:
    """Summary of one pipeline run returned to the caller."""

    success: bool
    extraction_id: int | None = None
    document_type: str | None = None
    confidence: float | None = None
    data: dict[str, Any] | None = None
    error: str | None = None
    needs_review: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ExtractionOrchestrator:
    """Sequences the extraction stages and persists their outcome.

    Args:
        classifier: Document type classifier.
        recovery: Text recovery engine.
        extractors: Type-specific extractors keyed by route name.
        repository: Store for extraction records and attachments.
        file_storage: Resolver for stored attachment files.
        config: Extraction scoring and storage limits.
    """

    def __init__(
        self,
        classifier: DocumentClassifier,
        recovery: TextRecoveryEngine,
        extractors: dict[str, DocumentExtractor],
        repository: ExtractionRepository,
        file_storage: FileStorage,
        config: ExtractionConfig,
    ) -> None:
        missing = set(EXTRACTOR_ROUTES.values()) - extractors.keys()
        if missing:
            raise ValueError(f"No extractor registered for routes: {sorted(missing)}")
        self.classifier = classifier
        self.recovery = recovery
        self.extractors = extractors
        self.repository = repository
        self.file_storage = file_storage
        self.config = config

    def final_confidence(
        self, extractor_confidence: float, classification_confidence: float
    ) -> float:
        """Average the extractor and classification confidences, capped."""
        blended = (extractor_confidence + classification_confidence) / 2
        return round(min(blended, self.config.max_confidence), 4)

    def process_file(
        self,
        file_path: Path | str,
        original_filename: str,
        attachment_id: int,
        batch_id: int,
    ) -> ProcessResult:
        """Run the full pipeline for one attachment and persist the result.

        Args:
            file_path: Readable path of the stored document.
            original_filename: Name the document was uploaded under.
            attachment_id: Attachment the document belongs to.
            batch_id: Product batch the attachment belongs to.

        Returns:
            ProcessResult describing the stored record.

        Raises:
            PersistenceFailure: If the record could not be stored.
        """
        logger.info("Starting extraction for %s (attachment %d)", original_filename, attachment_id)
        classification: Classification | None = None

        try:
            quick = self.classifier.quick_classify(original_filename)
            logger.info("Quick classification: %s (%.2f)", quick.type, quick.confidence)

            recovered = self.recovery.extract(file_path)
            logger.info(
                "Recovered %d characters via %s (confidence %.1f)",
                len(recovered.text),
                recovered.method,
                recovered.confidence,
            )

            classification = self.classifier.classify(original_filename, recovered.text)
            logger.info(
                "Classified as %s (%.2f via %s)",
                classification.type,
                classification.confidence,
                classification.method,
            )

            route = EXTRACTOR_ROUTES[classification.type]
            record = self.extractors[route].extract(recovered.text, recovered)
            confidence = self.final_confidence(record.confidence, classification.confidence)

            audit = {
                **record.to_dict(),
                **recovered.to_metadata(),
                "document_type": classification.type.value,
                "extractor": route,
                "quick_classification": quick.to_dict(),
                "classification": classification.to_dict(),
            }
            stored = self.repository.insert_completed(
                attachment_id=attachment_id,
                batch_id=batch_id,
                document_type=classification.type.value,
                confidence=confidence,
                extraction_method=recovered.method.value,
                raw_text=recovered.text[: self.config.raw_text_limit],
                entities=audit,
                columns=record.to_columns(),
            )
        except PersistenceFailure:
            raise
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            document_type = classification.type if classification else DocumentType.UNKNOWN
            logger.exception("Extraction failed for %s: %s", original_filename, error)
            failed = self.repository.insert_failed(
                attachment_id=attachment_id,
                batch_id=batch_id,
                error_message=error,
                document_type=document_type.value,
            )
            return ProcessResult(
                success=False,
                extraction_id=failed.id,
                document_type=document_type.value,
                confidence=0.0,
                error=error,
                needs_review=True,
            )

        logger.info(
            "Stored extraction %d for %s with confidence %.2f",
            stored.id,
            original_filename,
            confidence,
        )
        return ProcessResult(
            success=True,
            extraction_id=stored.id,
            document_type=classification.type.value,
            confidence=confidence,
            data=record.to_dict(),
            needs_review=confidence < self.config.confidence_threshold,
        )

    def retry_extraction(self, attachment_id: int) -> ProcessResult:
        """Re-run the pipeline for a stored attachment, appending a new record.

        Raises:
            AttachmentNotFound: If no attachment has this id.
            PersistenceFailure: If the store cannot be read or written.
        """
        attachment = self.repository.get_attachment(attachment_id)
        if attachment is None:
            raise AttachmentNotFound(attachment_id)

        logger.info("Retrying extraction for attachment %d", attachment_id)
        return self.process_file(
            self.file_storage.path_for(attachment.file_name),
            attachment.original_name,
            attachment.id,
            attachment.batch_id,
        )

    def get_latest_extraction(self, attachment_id: int) -> dict[str, Any] | None:
        record = self.repository.latest_for_attachment(attachment_id)
        return record.to_dict() if record else None

    def get_batch_extractions(self, batch_id: int) -> list[dict[str, Any]]:
        """All extraction records of a batch, newest first, with file names."""
        rows = []
        for record, attachment in self.repository.list_for_batch(batch_id):
            row = record.to_dict()
            row["file_name"] = attachment.file_name if attachment else None
            row["original_name"] = attachment.original_name if attachment else None
            row["file_type"] = attachment.file_type if attachment else None
            rows.append(row)
        return rows

    def get_extraction_stats(self) -> list[dict[str, Any]]:
        return self.repository.stats_by_document_type()
