"""Pydantic response schemas for the FastAPI endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from batchdoc.classification.document_classifier import DocumentType


class ExtractionRecordResponse(BaseModel):
    """Response schema for one stored extraction record."""

    id: int
    attachment_id: int
    batch_id: int
    document_type: DocumentType
    moisture_level: float | None = None
    pesticide_content: float | None = None
    pesticide_unit: str | None = None
    organic_status: bool | None = None
    iso_codes: list[str] | None = None
    lab_name: str | None = None
    test_date: str | None = None
    batch_number: str | None = None
    certificate_number: str | None = None
    expiry_date: str | None = None
    raw_extracted_text: str | None = None
    extracted_entities: dict[str, Any] | None = None
    confidence_score: float
    extraction_method: str | None = None
    status: str
    error_message: str | None = None
    created_at: datetime | None = None
    file_name: str | None = None
    original_name: str | None = None
    file_type: str | None = None


class BatchExtractionsResponse(BaseModel):
    """Response schema for every extraction of a batch, newest first."""

    batch_id: int
    count: int
    extractions: list[ExtractionRecordResponse]


class DocumentTypeStats(BaseModel):
    """Aggregate extraction counts for one document type."""

    document_type: DocumentType
    total: int
    avg_confidence: float
    successful: int
    failed: int


class StatsResponse(BaseModel):
    """Response schema for extraction statistics."""

    stats: list[DocumentTypeStats]


class ProcessResultResponse(BaseModel):
    """Response schema for a synchronous pipeline run."""

    success: bool
    extraction_id: int | None = None
    document_type: DocumentType | None = None
    confidence: float | None = None
    data: dict[str, Any] | None = None
    error: str | None = None
    needs_review: bool = False


class QueuedResponse(BaseModel):
    """Response schema for an extraction handed to the background worker."""

    status: str = "queued"
    attachment_id: int
    queue_depth: int


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    queue_depth: int
