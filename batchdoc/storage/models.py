"""SQLAlchemy models for batch attachments and extraction records.

``extracted_data`` is append-only: every pipeline run inserts one row and
rows are never updated or deleted. ``batch_attachments`` belongs to the
upload side and is only read by the pipeline when retrying.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Attachment(Base):
    """An uploaded supporting document attached to a product batch."""

    __tablename__ = "batch_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Attachment id={self.id} batch={self.batch_id} name={self.original_name}>"


class ExtractionRecord(Base):
    """The persisted result of one extraction run for one attachment."""

    __tablename__ = "extracted_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attachment_id: Mapped[int] = mapped_column(
        ForeignKey("batch_attachments.id"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(String(30), nullable=False, default="unknown")

    # Flat copies of the most queried structured fields
    moisture_level: Mapped[float | None] = mapped_column(Float)
    pesticide_content: Mapped[float | None] = mapped_column(Float)
    pesticide_unit: Mapped[str | None] = mapped_column(String(20))
    organic_status: Mapped[bool | None] = mapped_column()
    iso_codes: Mapped[list[str] | None] = mapped_column(JSON)
    lab_name: Mapped[str | None] = mapped_column(String(255))
    test_date: Mapped[str | None] = mapped_column(String(10))
    batch_number: Mapped[str | None] = mapped_column(String(100))
    certificate_number: Mapped[str | None] = mapped_column(String(100))
    expiry_date: Mapped[str | None] = mapped_column(String(10))

    raw_extracted_text: Mapped[str | None] = mapped_column(Text)
    extracted_entities: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    extraction_method: Mapped[str | None] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            column.name: getattr(self, column.name) for column in self.__table__.columns
        }

    def __repr__(self) -> str:
        return (
            f"<ExtractionRecord id={self.id} attachment={self.attachment_id} "
            f"type={self.document_type} status={self.status}>"
        )
