"""Command-line interface for field extraction and CSV/JSON export.

Subcommands extract fields from a single document, from a saved OCR
result, or from every document in a folder into one CSV file.
"""

import argparse
import asyncio
import csv
import json
import sys
import time
from pathlib import Path

from src.export.writers import fields_to_csv, fields_to_records, summarize
from src.extraction.pipeline import ExtractionResult, FieldExtractor
from src.ocr.document_processor import DocumentProcessor, DocumentResult
from src.rendering.render_queue import RenderQueue
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.pdf")
_META_COLUMNS = [
    "filename",
    "status",
    "page_count",
    "field_count",
    "average_confidence",
    "processing_time_s",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


async def _process_documents(
    files: list[Path], config: AppConfig
) -> list[tuple[DocumentResult | Exception, float]]:
    """Process documents one after another through a single render queue.

    Returns:
        One (result or exception, elapsed seconds) pair per file.
    """
    render_queue = RenderQueue(settle_interval=config.render.settle_interval)
    processor = DocumentProcessor(config, render_queue)
    results: list[tuple[DocumentResult | Exception, float]] = []
    try:
        for file_path in files:
            start_time = time.time()
            outcome: DocumentResult | Exception
            try:
                outcome = await processor.process(file_path, file_path.name)
            except Exception as exc:
                logger.error("Failed to process %s: %s", file_path.name, exc)
                outcome = exc
            results.append((outcome, round(time.time() - start_time, 2)))
    finally:
        await render_queue.close()
    return results


def extract_single(
    file_path: Path, config: AppConfig | None = None
) -> dict[str, object]:
    """Process a single document and return structured results.

    Args:
        file_path: Path to the document file.
        config: Application configuration; loaded from disk if omitted.

    Returns:
        Dictionary with filename, fields, line items, summary and raw text.
    """
    config = config or load_config()
    ((result, _),) = asyncio.run(_process_documents([file_path], config))
    if isinstance(result, Exception):
        raise result

    output: dict[str, object] = {"filename": file_path.name}
    output.update(fields_to_records(result.fields, result.line_items))
    output["raw_text"] = result.combined_text
    return output


def extract_from_ocr_file(
    ocr_path: Path, config: AppConfig | None = None
) -> ExtractionResult:
    """Extract fields from a JSON file holding raw OCR output.

    Raises:
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the top-level JSON value is not an object.
    """
    config = config or load_config()
    raw = json.loads(ocr_path.read_text())
    if not isinstance(raw, dict):
        raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
    return FieldExtractor(config.extraction).extract_page(raw)


def process_folder(
    input_dir: Path,
    output_csv: Path,
    verbose: bool = False,
    config: AppConfig | None = None,
) -> dict[str, int]:
    """Process all documents in a folder and export results to CSV.

    Each row holds one document; structured field labels become columns.

    Args:
        input_dir: Directory containing document files.
        output_csv: Path for the output CSV file.
        verbose: Whether to print per-file progress.
        config: Application configuration; loaded from disk if omitted.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))
    config = config or load_config()

    outcomes = asyncio.run(_process_documents(files, config))

    rows: list[dict[str, object]] = []
    for i, (file_path, (outcome, elapsed)) in enumerate(
        zip(files, outcomes, strict=True), 1
    ):
        if verbose:
            print(f"Processed [{i}/{len(files)}]: {file_path.name}")
        if isinstance(outcome, Exception):
            rows.append(
                {"filename": file_path.name, "status": "failed", "error": str(outcome)}
            )
            continue
        summary = summarize(outcome.fields)
        row: dict[str, object] = {
            "filename": file_path.name,
            "status": "success",
            "page_count": outcome.page_count,
            "field_count": summary["total_fields"],
            "average_confidence": summary["average_confidence"],
            "processing_time_s": elapsed,
            "error": None,
        }
        row.update({f.label: f.value for f in outcome.fields if f.type.is_structured})
        rows.append(row)

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    failed = sum(1 for outcome, _ in outcomes if isinstance(outcome, Exception))
    summary_counts = {
        "total": len(files),
        "successful": len(files) - failed,
        "failed": failed,
    }
    _print_summary(summary_counts, output_csv)
    return summary_counts


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write per-document rows to a CSV file.

    Args:
        rows: List of result dictionaries.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    field_columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in _META_COLUMNS and key not in field_columns:
                field_columns.append(key)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(
            f, fieldnames=_META_COLUMNS + field_columns, extrasaction="ignore"
        )
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print a human-readable batch summary.

    Args:
        summary: Counts of total, successful, and failed documents.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def _emit(text: str, output: Path | None) -> None:
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text)
        print(f"Output written to {output}")
    else:
        print(text)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Invoice field extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of documents")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with documents"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    fields_parser = subparsers.add_parser(
        "fields", help="Extract fields from a saved OCR result (JSON)"
    )
    fields_parser.add_argument("ocr_file", type=Path, help="OCR result JSON file")
    fields_parser.add_argument(
        "-f",
        "--format",
        choices=["json", "csv"],
        default="json",
        dest="fmt",
        help="Output format (default: json)",
    )
    fields_parser.add_argument("-o", "--output", type=Path, help="Output file")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, args.verbose, config)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result = extract_single(args.file, config)
        _emit(json.dumps(result, indent=2), args.output)
    elif args.command == "fields":
        if not args.ocr_file.exists():
            print(f"Error: {args.ocr_file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            extraction = extract_from_ocr_file(args.ocr_file, config)
        except json.JSONDecodeError as exc:
            print(f"Error: {args.ocr_file} is not valid JSON: {exc}", file=sys.stderr)
            sys.exit(1)
        except ValueError as exc:
            print(f"Error: {args.ocr_file}: {exc}", file=sys.stderr)
            sys.exit(1)
        if args.fmt == "csv":
            _emit(fields_to_csv(extraction.fields), args.output)
        else:
            payload = fields_to_records(extraction.fields, extraction.line_items)
            _emit(json.dumps(payload, indent=2), args.output)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
