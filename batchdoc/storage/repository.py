"""Append-only persistence for extraction records.

Every public method runs in its own session. Database errors surface as
``PersistenceFailure`` so the pipeline can tell them apart from text
recovery errors.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, case, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from batchdoc.errors import PersistenceFailure
from batchdoc.utils.logger import get_logger

from .models import Attachment, Base, ExtractionRecord

logger = get_logger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


def create_db_engine(database_url: str) -> Engine:
    """Create an engine, allowing SQLite connections to cross worker threads.

    In-memory SQLite databases share one connection so every session sees
    the same data.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, connect_args={"check_same_thread": False})


class ExtractionRepository:
    """Reads and inserts extraction records and attachment metadata.

    Args:
        engine: SQLAlchemy engine bound to the extraction database.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        with self._guard("create schema"):
            Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._guard("database operation"):
            with self._session_factory() as session, session.begin():
                yield session

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error("Persistence failure during %s: %s", operation, exc)
            raise PersistenceFailure(f"{operation} failed: {exc}") from exc

    def insert_completed(
        self,
        attachment_id: int,
        batch_id: int,
        document_type: str,
        confidence: float,
        extraction_method: str,
        raw_text: str,
        entities: dict[str, Any],
        columns: dict[str, Any],
    ) -> ExtractionRecord:
        """Insert the record of a successful run.

        Args:
            attachment_id: Attachment the document belongs to.
            batch_id: Product batch the attachment belongs to.
            document_type: Final document type.
            confidence: Final blended confidence in [0, 1].
            extraction_method: How the text was recovered.
            raw_text: Recovered text, already length-capped.
            entities: Audit blob (structured record, entities, OCR metadata).
            columns: Flat structured columns (moisture_level, iso_codes, ...).

        Returns:
            The inserted record with its id assigned.
        """
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {confidence}")

        record = ExtractionRecord(
            attachment_id=attachment_id,
            batch_id=batch_id,
            document_type=document_type,
            confidence_score=confidence,
            extraction_method=extraction_method,
            raw_extracted_text=raw_text,
            extracted_entities=entities,
            status=STATUS_COMPLETED,
            **columns,
        )
        return self._add(record)

    def insert_failed(
        self,
        attachment_id: int,
        batch_id: int,
        error_message: str,
        document_type: str = "unknown",
    ) -> ExtractionRecord:
        """Insert the record of a failed run with zero confidence."""
        record = ExtractionRecord(
            attachment_id=attachment_id,
            batch_id=batch_id,
            document_type=document_type,
            confidence_score=0.0,
            status=STATUS_FAILED,
            error_message=error_message or "Unknown extraction error",
        )
        return self._add(record)

    def add_attachment(
        self,
        batch_id: int,
        file_name: str,
        original_name: str,
        file_type: str | None = None,
    ) -> Attachment:
        attachment = Attachment(
            batch_id=batch_id,
            file_name=file_name,
            original_name=original_name,
            file_type=file_type,
        )
        with self._session() as session:
            session.add(attachment)
            session.flush()
        logger.info("Registered attachment %d for batch %d", attachment.id, batch_id)
        return attachment

    def get_attachment(self, attachment_id: int) -> Attachment | None:
        with self._session() as session:
            return session.get(Attachment, attachment_id)

    def latest_for_attachment(self, attachment_id: int) -> ExtractionRecord | None:
        stmt = (
            select(ExtractionRecord)
            .where(ExtractionRecord.attachment_id == attachment_id)
            .order_by(ExtractionRecord.created_at.desc(), ExtractionRecord.id.desc())
            .limit(1)
        )
        with self._session() as session:
            return session.scalars(stmt).first()

    def list_for_batch(self, batch_id: int) -> list[tuple[ExtractionRecord, Attachment | None]]:
        """All records of a batch, newest first, joined with their attachment."""
        stmt = (
            select(ExtractionRecord, Attachment)
            .outerjoin(Attachment, ExtractionRecord.attachment_id == Attachment.id)
            .where(ExtractionRecord.batch_id == batch_id)
            .order_by(ExtractionRecord.created_at.desc(), ExtractionRecord.id.desc())
        )
        with self._session() as session:
            return [(record, attachment) for record, attachment in session.execute(stmt)]

    def stats_by_document_type(self) -> list[dict[str, Any]]:
        """Count, mean confidence and success/failure counts per document type."""
        stmt = select(
            ExtractionRecord.document_type,
            func.count(ExtractionRecord.id).label("total"),
            func.avg(ExtractionRecord.confidence_score).label("avg_confidence"),
            func.sum(case((ExtractionRecord.status == STATUS_COMPLETED, 1), else_=0)).label(
                "successful"
            ),
            func.sum(case((ExtractionRecord.status == STATUS_FAILED, 1), else_=0)).label(
                "failed"
            ),
        ).group_by(ExtractionRecord.document_type)

        with self._session() as session:
            rows = session.execute(stmt).all()

        return [
            {
                "document_type": row.document_type,
                "total": int(row.total),
                "avg_confidence": float(row.avg_confidence or 0.0),
                "successful": int(row.successful or 0),
                "failed": int(row.failed or 0),
            }
            for row in rows
        ]

    def _add(self, record: ExtractionRecord) -> ExtractionRecord:
        with self._session() as session:
            session.add(record)
            session.flush()
        logger.info(
            "Stored %s extraction %d for attachment %d",
            record.status,
            record.id,
            record.attachment_id,
        )
        return record
