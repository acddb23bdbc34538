"""Command-line interface for batch extraction, retries and reporting.

Provides subcommands for processing a folder of supporting documents into
a batch, extracting a single file without storing it, retrying an
attachment, and printing stored results.
"""

import argparse
import csv
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from batchdoc.classification.document_classifier import DocumentClassifier
from batchdoc.errors import AttachmentNotFound
from batchdoc.ocr.text_recovery import SUPPORTED_EXTENSIONS, TextRecoveryEngine
from batchdoc.pipeline.factory import PipelineServices, build_services
from batchdoc.pipeline.orchestrator import EXTRACTOR_ROUTES, build_extractor_table
from batchdoc.utils.config import AppConfig, load_config
from batchdoc.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_CSV_COLUMNS = [
    "filename",
    "attachment_id",
    "extraction_id",
    "status",
    "document_type",
    "confidence",
    "needs_review",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all files with a supported extension in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    return sorted(
        path
        for path in input_dir.iterdir()
        if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
    )


def process_folder(
    input_dir: Path,
    output_csv: Path,
    batch_id: int,
    services: PipelineServices,
    verbose: bool = False,
) -> dict[str, int]:
    """Register every document in a folder under a batch and extract it.

    Args:
        input_dir: Directory containing document files.
        output_csv: Path for the output CSV file.
        batch_id: Batch the documents are attached to.
        services: Extraction services.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents for batch %d", len(files), batch_id)

    rows: list[dict[str, Any]] = []
    successful = 0
    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        attachment = services.repository.add_attachment(
            batch_id=batch_id,
            file_name=str(file_path.resolve()),
            original_name=file_path.name,
            file_type=mimetypes.guess_type(file_path.name)[0],
        )
        result = services.orchestrator.process_file(
            file_path, file_path.name, attachment.id, batch_id
        )
        if result.success:
            successful += 1
        rows.append(
            {
                "filename": file_path.name,
                "attachment_id": attachment.id,
                "extraction_id": result.extraction_id,
                "status": "completed" if result.success else "failed",
                "document_type": result.document_type,
                "confidence": result.confidence,
                "needs_review": result.needs_review,
                "error": result.error,
            }
        )

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": len(files) - successful}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, Any]], output_path: Path) -> None:
    if not rows:
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Extraction Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def extract_single(file_path: Path, config: AppConfig) -> dict[str, Any]:
    """Classify, recover and extract one document without storing it.

    Args:
        file_path: Path to the document file.
        config: Application configuration.

    Returns:
        Dictionary with the classification, structured record and raw text.

    Raises:
        UnsupportedFileType: If the file extension is not supported.
        RecoveryFailure: If text recovery fails.
    """
    classifier = DocumentClassifier()
    recovery = TextRecoveryEngine.from_config(config)
    try:
        recovered = recovery.extract(file_path)
    finally:
        recovery.close()

    classification = classifier.classify(file_path.name, recovered.text)
    extractor = build_extractor_table()[EXTRACTOR_ROUTES[classification.type]]
    record = extractor.extract(recovered.text, recovered)

    return {
        "filename": file_path.name,
        "classification": classification.to_dict(),
        "record": record.to_dict(),
        "recovery": recovered.to_metadata(),
        "raw_text": recovered.text,
    }


def _emit(payload: Any, output: Path | None = None) -> None:
    output_str = json.dumps(payload, indent=2, default=str)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Batch supporting-document extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Extract a folder of documents")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with documents")
    batch_parser.add_argument(
        "-b", "--batch-id", type=int, required=True, help="Batch the documents belong to"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    single_parser = subparsers.add_parser("extract", help="Extract a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    retry_parser = subparsers.add_parser("retry", help="Re-run extraction for an attachment")
    retry_parser.add_argument("attachment_id", type=int)

    subparsers.add_parser("stats", help="Show extraction statistics per document type")

    list_parser = subparsers.add_parser("list", help="List extractions of a batch")
    list_parser.add_argument("batch_id", type=int)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    if args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        _emit(extract_single(args.file, config), args.output)
        return

    if args.command == "batch" and not args.input_dir.is_dir():
        print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    services = build_services(config)
    try:
        if args.command == "batch":
            process_folder(
                args.input_dir, args.output, args.batch_id, services, args.verbose
            )
        elif args.command == "retry":
            try:
                result = services.orchestrator.retry_extraction(args.attachment_id)
            except AttachmentNotFound as exc:
                print(f"Error: {exc}", file=sys.stderr)
                sys.exit(1)
            _emit(result.to_dict())
        elif args.command == "stats":
            _emit(services.orchestrator.get_extraction_stats())
        elif args.command == "list":
            _emit(services.orchestrator.get_batch_extractions(args.batch_id))
    finally:
        services.close()


if __name__ == "__main__":
    main()
