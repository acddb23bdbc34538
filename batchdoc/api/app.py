"""FastAPI application exposing extraction results and triggers.

The endpoints only read stored extraction records, re-run the pipeline
for an attachment, or hand an attachment to the background worker.
Services are provided through the ``get_services`` dependency.
"""

import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, status

from batchdoc import __version__
from batchdoc.errors import AttachmentNotFound, PersistenceFailure
from batchdoc.pipeline.factory import PipelineServices, build_services
from batchdoc.pipeline.worker import ExtractionJob
from batchdoc.utils.config import load_config
from batchdoc.utils.logger import get_logger

from .schemas import (
    BatchExtractionsResponse,
    DocumentTypeStats,
    ExtractionRecordResponse,
    HealthResponse,
    ProcessResultResponse,
    QueuedResponse,
    StatsResponse,
)

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_services() -> PipelineServices:
    """Build the extraction services once per process."""
    return build_services(load_config())


Services = Annotated[PipelineServices, Depends(get_services)]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    services = app.dependency_overrides.get(get_services, get_services)()
    services.worker.start()
    yield
    services.close()


app = FastAPI(
    title="Batch Document Extraction API",
    description="Structured facts from lab reports, packaging and certificates",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health", response_model=HealthResponse)
def health_check(services: Services) -> HealthResponse:
    """Return service health and background queue depth."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=shutil.which("tesseract") is not None,
        queue_depth=services.worker.depth,
    )


@app.get("/extraction/batch/{batch_id}", response_model=BatchExtractionsResponse)
def get_batch_extractions(batch_id: int, services: Services) -> BatchExtractionsResponse:
    """List every extraction record of a batch, newest first."""
    rows = _read(services.orchestrator.get_batch_extractions, batch_id)
    return BatchExtractionsResponse(
        batch_id=batch_id,
        count=len(rows),
        extractions=[ExtractionRecordResponse(**row) for row in rows],
    )


@app.get("/extraction/stats/overview", response_model=StatsResponse)
def get_extraction_stats(services: Services) -> StatsResponse:
    """Aggregate extraction counts and confidence per document type."""
    rows = _read(services.orchestrator.get_extraction_stats)
    return StatsResponse(stats=[DocumentTypeStats(**row) for row in rows])


@app.get("/extraction/{attachment_id}", response_model=ExtractionRecordResponse)
def get_latest_extraction(attachment_id: int, services: Services) -> ExtractionRecordResponse:
    """Return the newest extraction record of an attachment."""
    row = _read(services.orchestrator.get_latest_extraction, attachment_id)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No extraction found for attachment {attachment_id}",
        )
    return ExtractionRecordResponse(**row)


@app.post("/extraction/retry/{attachment_id}", response_model=ProcessResultResponse)
def retry_extraction(attachment_id: int, services: Services) -> ProcessResultResponse:
    """Re-run the pipeline for an attachment and store a new record."""
    try:
        result = services.orchestrator.retry_extraction(attachment_id)
    except AttachmentNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        logger.error("Retry for attachment %d could not be stored: %s", attachment_id, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    return ProcessResultResponse(**result.to_dict())


@app.post(
    "/extraction/process/{attachment_id}",
    response_model=QueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def process_attachment(attachment_id: int, services: Services) -> QueuedResponse:
    """Queue an attachment for background extraction and return at once."""
    attachment = _read(services.repository.get_attachment, attachment_id)
    if attachment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(AttachmentNotFound(attachment_id)),
        )

    depth = services.worker.submit(
        ExtractionJob(
            attachment_id=attachment.id,
            batch_id=attachment.batch_id,
            file_path=services.file_storage.path_for(attachment.file_name),
            original_filename=attachment.original_name,
        )
    )
    return QueuedResponse(attachment_id=attachment_id, queue_depth=depth)


def _read(query, *args):
    try:
        return query(*args)
    except PersistenceFailure as exc:
        logger.error("Extraction store unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
