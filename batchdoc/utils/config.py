"""Configuration management for the batch document extraction service.

Loads and validates YAML configuration with sensible defaults for image
preprocessing, text recovery, extraction scoring, storage and the
background extraction worker.
"""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PreprocessingConfig(BaseModel):
    """Configuration for the image transform applied before OCR."""

    enabled: bool = True
    threshold: int = Field(default=128, ge=0, le=255)
    temp_dir: str | None = None


class OCRConfig(BaseModel):
    """Configuration for text recovery backends."""

    method: Literal["tesseract"] = "tesseract"
    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    timeout_seconds: float = Field(default=0, ge=0)
    pdf_text_confidence: float = Field(default=85.0, ge=0, le=100)
    pdf_ocr_fallback: bool = False
    pdf_dpi: int = 300


class ExtractionConfig(BaseModel):
    """Configuration for scoring and storing extraction results."""

    raw_text_limit: int = Field(default=10000, gt=0)
    confidence_threshold: float = Field(default=0.7, ge=0, le=1)
    max_confidence: float = Field(default=0.99, ge=0, le=1)


class StorageConfig(BaseModel):
    """Configuration for the extraction record store and uploaded files."""

    database_url: str = "sqlite:///data/extractions.db"
    upload_dir: str = "uploads/batches"


class WorkerConfig(BaseModel):
    """Configuration for the background extraction worker."""

    num_workers: int = Field(default=1, ge=1)
    max_delivery_attempts: int = Field(default=3, ge=1)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    log_level: str = "INFO"
    log_file: Path | None = None


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
