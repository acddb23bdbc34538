"""Shared test fixtures for the batch document extraction test suite."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest

from batchdoc.classification.document_classifier import DocumentClassifier
from batchdoc.ocr.pdf_handler import PDFHandler
from batchdoc.ocr.tesseract_engine import OCRResult
from batchdoc.ocr.text_recovery import TextRecoveryEngine
from batchdoc.pipeline.orchestrator import ExtractionOrchestrator, build_extractor_table
from batchdoc.preprocessing.pipeline import PreprocessingPipeline
from batchdoc.storage.files import FileStorage
from batchdoc.storage.repository import ExtractionRepository, create_db_engine
from batchdoc.utils.config import ExtractionConfig, OCRConfig, PreprocessingConfig

LAB_REPORT_TEXT = """GREEN VALLEY TESTING LABORATORY
Laboratory Test Report
Sample ID: S-2024-118
Batch Number: BATCH-2024-001
Test Date: 2024-03-15
Tested by: Green Valley Testing Lab
Moisture Content: 12.5%
Pesticide Residue: 0.02 ppm
Organic Status: Yes
Lead: 0.05 ppm
pH Level: 6.8
Total Plate Count: 1500 cfu/g
Aflatoxin B1: 2.1 ppb
"""

PACKAGING_TEXT = """Organic Basmati Rice
Product: Organic Basmati Rice
Net Weight: 5 kg
Ingredients: basmati rice, sea salt
Batch No: LOT-88421
MFG Date: 01/15/2024
EXP Date: 01/15/2026
USDA Organic
ISO 22000
Storage: Keep in a cool dry place
"""

CERTIFICATE_TEXT = """CERTIFICATE OF COMPLIANCE
ISO 22000:2018 Food Safety Management System
This is to certify that Sunrise Organic Farms Ltd has successfully implemented
Certificate Number: FS-2024-0042
Issued by: Global Certification Bureau
Date of Issue: 2024-01-10
Valid until: 2027-01-09
Scope: Processing and packaging of organic rice
Accredited by: National Accreditation Board
Accreditation No: NAB-771
"""


def make_ocr_result(text: str, confidence: float = 91.0) -> OCRResult:
    """Create an OCR result carrying only text and confidence."""
    return OCRResult(text=text, words=[], lines=[], language="eng", confidence=confidence)


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic BGR test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def document_image(tmp_path: Path, sample_color_image: np.ndarray) -> Path:
    """Write a synthetic document photo to disk."""
    path = tmp_path / "scan.png"
    cv2.imwrite(str(path), sample_color_image)
    return path


@pytest.fixture
def lab_report_text() -> str:
    return LAB_REPORT_TEXT


@pytest.fixture
def packaging_text() -> str:
    return PACKAGING_TEXT


@pytest.fixture
def certificate_text() -> str:
    return CERTIFICATE_TEXT


@pytest.fixture
def repository() -> Iterator[ExtractionRepository]:
    """An extraction repository over a fresh in-memory database."""
    repo = ExtractionRepository(create_db_engine("sqlite://"))
    repo.create_schema()
    yield repo
    repo.engine.dispose()


@pytest.fixture
def ocr_backend() -> MagicMock:
    """A mocked image backend returning the lab report text."""
    backend = MagicMock()
    backend.recognize.return_value = make_ocr_result(LAB_REPORT_TEXT)
    return backend


@pytest.fixture
def pdf_handler() -> MagicMock:
    return MagicMock(spec=PDFHandler)


@pytest.fixture
def recovery_engine(ocr_backend: MagicMock, pdf_handler: MagicMock) -> TextRecoveryEngine:
    """A text recovery engine with mocked OCR and PDF backends."""
    return TextRecoveryEngine(
        config=OCRConfig(),
        backends={"tesseract": ocr_backend},
        pdf_handler=pdf_handler,
        preprocessing=PreprocessingPipeline(PreprocessingConfig()),
    )


@pytest.fixture
def orchestrator(
    recovery_engine: TextRecoveryEngine,
    repository: ExtractionRepository,
    tmp_path: Path,
) -> ExtractionOrchestrator:
    """An orchestrator wired to the mocked recovery engine and in-memory store."""
    return ExtractionOrchestrator(
        classifier=DocumentClassifier(),
        recovery=recovery_engine,
        extractors=build_extractor_table(),
        repository=repository,
        file_storage=FileStorage(tmp_path),
        config=ExtractionConfig(),
    )
