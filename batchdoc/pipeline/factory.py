"""Construction of the extraction services from configuration."""

from dataclasses import dataclass
from pathlib import Path

from batchdoc.classification.document_classifier import DocumentClassifier
from batchdoc.ocr.text_recovery import TextRecoveryEngine
from batchdoc.storage.files import FileStorage
from batchdoc.storage.repository import ExtractionRepository, create_db_engine
from batchdoc.utils.config import AppConfig
from batchdoc.utils.logger import get_logger

from .orchestrator import ExtractionOrchestrator, build_extractor_table
from .worker import ExtractionWorker

logger = get_logger(__name__)


@dataclass
class PipelineServices:
    """Explicitly constructed services shared by the API and CLI."""

    orchestrator: ExtractionOrchestrator
    repository: ExtractionRepository
    file_storage: FileStorage
    worker: ExtractionWorker

    def close(self) -> None:
        """Stop the worker, then release the OCR engine and database."""
        self.worker.stop()
        self.orchestrator.recovery.close()
        self.repository.engine.dispose()


def _ensure_sqlite_dir(database_url: str) -> None:
    prefix = "sqlite:///"
    if database_url.startswith(prefix) and database_url != "sqlite:///:memory:":
        Path(database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)


def build_services(config: AppConfig) -> PipelineServices:
    """Wire the classifier, recovery engine, extractors, store and worker.

    The worker is created but not started.

    Args:
        config: Application configuration.

    Returns:
        The assembled services.
    """
    _ensure_sqlite_dir(config.storage.database_url)
    repository = ExtractionRepository(create_db_engine(config.storage.database_url))
    repository.create_schema()

    file_storage = FileStorage(config.storage.upload_dir)
    orchestrator = ExtractionOrchestrator(
        classifier=DocumentClassifier(),
        recovery=TextRecoveryEngine.from_config(config),
        extractors=build_extractor_table(),
        repository=repository,
        file_storage=file_storage,
        config=config.extraction,
    )
    worker = ExtractionWorker(
        orchestrator,
        num_workers=config.worker.num_workers,
        max_delivery_attempts=config.worker.max_delivery_attempts,
    )
    logger.info(
        "Extraction services ready (store=%s, uploads=%s)",
        config.storage.database_url,
        file_storage.root,
    )
    return PipelineServices(
        orchestrator=orchestrator,
        repository=repository,
        file_storage=file_storage,
        worker=worker,
    )
