"""Tests for the batch extraction CLI and CSV export."""

import csv
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from PIL import Image

from batchdoc.cli import (
    _find_documents,
    _print_summary,
    _write_csv,
    extract_single,
    main,
    process_folder,
)
from batchdoc.errors import RecoveryFailure
from batchdoc.ocr.text_recovery import TextRecoveryEngine
from batchdoc.pipeline.factory import PipelineServices
from batchdoc.pipeline.orchestrator import ExtractionOrchestrator
from batchdoc.pipeline.worker import ExtractionWorker
from batchdoc.storage.repository import ExtractionRepository
from batchdoc.utils.config import AppConfig


def _make_test_image(path: Path) -> None:
    """Create a minimal test PNG image at the given path."""
    img = Image.fromarray(np.full((100, 200, 3), 255, dtype=np.uint8))
    img.save(path, format="PNG")


@pytest.fixture
def services(
    orchestrator: ExtractionOrchestrator, repository: ExtractionRepository
) -> PipelineServices:
    return PipelineServices(
        orchestrator=orchestrator,
        repository=repository,
        file_storage=orchestrator.file_storage,
        worker=ExtractionWorker(orchestrator),
    )


@pytest.fixture
def input_dir(tmp_path: Path) -> Path:
    """A folder with two photos, a scanned PDF and an unsupported file."""
    folder = tmp_path / "batch"
    folder.mkdir()
    _make_test_image(folder / "lab_report.png")
    _make_test_image(folder / "IMG_0042.jpg")
    (folder / "scan.pdf").write_bytes(b"%PDF-1.4")
    (folder / "notes.docx").write_bytes(b"PK")
    return folder


class TestFindDocuments:
    """Tests for discovering documents in a folder."""

    def test_supported_files_sorted(self, input_dir: Path) -> None:
        (input_dir / "nested").mkdir()
        names = [path.name for path in _find_documents(input_dir)]
        assert names == ["IMG_0042.jpg", "lab_report.png", "scan.pdf"]

    def test_empty_folder(self, tmp_path: Path) -> None:
        assert _find_documents(tmp_path) == []


class TestProcessFolder:
    """Tests for batch processing a folder."""

    def test_process_folder(
        self,
        services: PipelineServices,
        pdf_handler: MagicMock,
        input_dir: Path,
        tmp_path: Path,
    ) -> None:
        pdf_handler.extract_text.side_effect = RecoveryFailure("PDF extraction failed: broken")
        output_csv = tmp_path / "out" / "results.csv"

        summary = process_folder(input_dir, output_csv, 7, services)

        assert summary == {"total": 3, "successful": 2, "failed": 1}
        with open(output_csv) as f:
            rows = {row["filename"]: row for row in csv.DictReader(f)}
        assert rows["lab_report.png"]["status"] == "completed"
        assert rows["lab_report.png"]["document_type"] == "lab_report"
        assert rows["scan.pdf"]["status"] == "failed"
        assert rows["scan.pdf"]["error"] == "PDF extraction failed: broken"

        stored = services.orchestrator.get_batch_extractions(7)
        assert len(stored) == 3
        assert {row["original_name"] for row in stored} == set(rows)

    def test_attachments_point_at_source_files(
        self, services: PipelineServices, input_dir: Path, tmp_path: Path
    ) -> None:
        process_folder(input_dir, tmp_path / "results.csv", 7, services)

        rows = services.orchestrator.get_batch_extractions(7)
        lab = next(row for row in rows if row["original_name"] == "lab_report.png")
        assert Path(lab["file_name"]) == (input_dir / "lab_report.png").resolve()
        assert lab["file_type"] == "image/png"

        retried = services.orchestrator.retry_extraction(lab["attachment_id"])
        assert retried.success is True

    def test_empty_folder(self, services: PipelineServices, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        output_csv = tmp_path / "results.csv"

        summary = process_folder(empty, output_csv, 7, services)

        assert summary == {"total": 0, "successful": 0, "failed": 0}
        assert not output_csv.exists()


class TestCsvAndSummary:
    """Tests for CSV writing and the printed summary."""

    def test_write_csv_empty(self, tmp_path: Path) -> None:
        output = tmp_path / "empty.csv"
        _write_csv([], output)
        assert not output.exists()

    def test_write_csv_columns(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        _write_csv([{"filename": "a.png", "status": "completed", "extra": "ignored"}], output)

        with open(output) as f:
            reader = csv.DictReader(f)
            assert reader.fieldnames[:2] == ["filename", "attachment_id"]
            assert "extra" not in reader.fieldnames
            assert next(reader)["status"] == "completed"

    def test_print_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        _print_summary({"total": 3, "successful": 2, "failed": 1}, Path("results.csv"))
        out = capsys.readouterr().out
        assert "Batch Extraction Complete" in out
        assert "Failed:     1" in out


class TestExtractSingle:
    """Tests for extracting one file without storing it."""

    def test_extract_single(
        self, recovery_engine: TextRecoveryEngine, document_image: Path
    ) -> None:
        with patch("batchdoc.cli.TextRecoveryEngine.from_config", return_value=recovery_engine):
            result = extract_single(document_image, AppConfig())

        assert result["filename"] == "scan.png"
        assert result["classification"]["type"] == "lab_report"
        assert result["record"]["moisture_level"]["value"] == 12.5
        assert result["recovery"]["ocr_method"] == "optical"
        assert "Moisture Content" in result["raw_text"]
        recovery_engine.backend.terminate.assert_called_once()


class TestMain:
    """Tests for argument parsing and command dispatch."""

    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0

    def test_extract_to_file(
        self,
        recovery_engine: TextRecoveryEngine,
        document_image: Path,
        tmp_path: Path,
    ) -> None:
        output = tmp_path / "result.json"
        with patch("batchdoc.cli.TextRecoveryEngine.from_config", return_value=recovery_engine):
            main(["extract", str(document_image), "-o", str(output)])

        data = json.loads(output.read_text())
        assert data["record"]["batch_number"] == "BATCH-2024-001"

    def test_log_file_from_config(
        self,
        recovery_engine: TextRecoveryEngine,
        document_image: Path,
        tmp_path: Path,
    ) -> None:
        output = tmp_path / "result.json"
        log_file = tmp_path / "logs" / "batchdoc.log"
        config_path = tmp_path / "config.yaml"
        config_path.write_text(f"log_level: DEBUG\nlog_file: {log_file}\n")

        with patch("batchdoc.cli.setup_logging") as mock_setup, patch(
            "batchdoc.cli.TextRecoveryEngine.from_config", return_value=recovery_engine
        ):
            main(["-c", str(config_path), "extract", str(document_image), "-o", str(output)])

        mock_setup.assert_called_once_with("DEBUG", log_file)

    def test_extract_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["extract", str(tmp_path / "missing.png")])
        assert exc_info.value.code == 1

    def test_batch(
        self,
        services: PipelineServices,
        pdf_handler: MagicMock,
        input_dir: Path,
        tmp_path: Path,
    ) -> None:
        pdf_handler.extract_text.return_value = ("Net Weight: 5 kg", 1)
        output_csv = tmp_path / "results.csv"
        with patch("batchdoc.cli.build_services", return_value=services):
            main(["batch", str(input_dir), "--batch-id", "7", "-o", str(output_csv)])

        with open(output_csv) as f:
            assert len(list(csv.DictReader(f))) == 3

    def test_batch_missing_dir(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["batch", str(tmp_path / "missing"), "-b", "1"])
        assert exc_info.value.code == 1

    def test_retry_unknown_attachment(self, services: PipelineServices) -> None:
        with patch("batchdoc.cli.build_services", return_value=services):
            with pytest.raises(SystemExit) as exc_info:
                main(["retry", "999"])
        assert exc_info.value.code == 1

    def test_list(
        self,
        services: PipelineServices,
        document_image: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        attachment = services.repository.add_attachment(7, "scan.png", "lab_report.png")
        services.orchestrator.process_file(document_image, "lab_report.png", attachment.id, 7)

        with patch("batchdoc.cli.build_services", return_value=services):
            main(["list", "7"])

        out = capsys.readouterr().out
        assert '"original_name": "lab_report.png"' in out
        assert '"status": "completed"' in out

    def test_stats(self, services: PipelineServices, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("batchdoc.cli.build_services", return_value=services):
            main(["stats"])
        assert capsys.readouterr().out.strip().endswith("[]")
