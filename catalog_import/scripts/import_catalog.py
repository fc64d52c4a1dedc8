#!/usr/bin/env python3
"""
Catalog Import Script
Imports a product catalog spreadsheet into the database.

Usage:
    python -m catalog_import.scripts.import_catalog data/catalog.xlsx --sheet Products --guess-mapping
    python -m catalog_import.scripts.import_catalog data/catalog.csv --mapping '{"0": "variant_sku", "1": "product_name"}' --mode auto_generate_parents
    python -m catalog_import.scripts.import_catalog analyze data/catalog.xlsx
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from catalog_import.config.settings import get_settings
from catalog_import.errors import ImportPipelineError
from catalog_import.ingestion.field_mapping import guess_field_mapping
from catalog_import.ingestion.worksheet_analyzer import WorksheetAnalyzer
from catalog_import.models.imports import ImportMode, ImportRequest

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_import_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a product catalog file")
    parser.add_argument("file_path", type=str, help="Path to a .csv/.tsv/.txt or .xlsx file")
    parser.add_argument(
        "--sheet",
        action="append",
        dest="sheets",
        help="Worksheet to import (repeatable, default: first sheet)",
    )
    mapping = parser.add_mutually_exclusive_group(required=True)
    mapping.add_argument("--mapping", type=str, help="Column mapping as JSON {column_index: field}")
    mapping.add_argument(
        "--guess-mapping", action="store_true", help="Guess the column mapping from the headers"
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.STANDARD.value,
        help="Parent handling mode (default: standard)",
    )
    parser.add_argument("--chunk-size", type=int, default=None, help="Fixed chunk size (default: memory based)")
    parser.add_argument("--max-rows", type=int, default=None, help="Stop after this many data rows")
    parser.add_argument("--dry-run", action="store_true", help="Validate only, without database writes")
    parser.add_argument(
        "--async", dest="run_async", action="store_true", help="Queue the import on the Celery worker"
    )
    return parser


def build_analyze_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="List worksheets, headers and row counts")
    parser.add_argument("file_path", type=str, help="Path to the file to analyze")
    return parser


def analyze(file_path: str) -> int:
    analysis = WorksheetAnalyzer().analyze(file_path)

    logger.info("=" * 60)
    logger.info(f"WORKSHEETS IN {file_path}")
    logger.info("=" * 60)
    for sheet in analysis.worksheets:
        approx = "~" if sheet.row_count_estimated else ""
        logger.info(f"[{sheet.index}] {sheet.name}: {approx}{sheet.row_count} rows, {len(sheet.headers)} columns")
        logger.info(f"    Headers: {sheet.preview}")
    if analysis.truncated:
        logger.warning("Worksheet list truncated")
    return 0


def resolve_request(args: argparse.Namespace) -> ImportRequest:
    analyzer = WorksheetAnalyzer()
    sheets = args.sheets
    if not sheets:
        sheets = [analyzer.analyze(args.file_path).worksheets[0].name]

    if args.guess_mapping:
        headers = analyzer.load_headers_for_selected_sheets(args.file_path, sheets).headers
        mapping = guess_field_mapping(headers)
        for index, field in mapping.items():
            logger.info(f"Column {index} '{headers[index]}' -> {field}")
    else:
        mapping = json.loads(args.mapping)

    return ImportRequest(
        file_path=args.file_path,
        selected_sheets=sheets,
        column_mapping=mapping,
        mode=ImportMode(args.mode),
        chunk_size=args.chunk_size,
        max_rows=args.max_rows,
    )


def run_import(args: argparse.Namespace) -> int:
    from catalog_import.ingestion.pipeline import CatalogImportPipeline

    request = resolve_request(args)

    if args.run_async:
        from catalog_import.tasks.imports import submit_import

        import_id = submit_import(request)
        logger.info(f"Import queued, progress id: {import_id}")
        return 0

    pipeline = CatalogImportPipeline()

    if args.dry_run:
        logger.info("Running in DRY RUN mode - no database writes")
        report = pipeline.dry_run(request)
        logger.info(f"Rows: {report.total_rows}, valid: {report.valid_rows}, errors: {report.error_count}")
        logger.info(f"Parent rows: {report.parent_rows}, variant rows: {report.variant_rows}")
        for group in report.groups_preview:
            logger.info(f"  Group '{group['name']}' ({group['method']}): {group['variants']} variants")
        for recommendation in report.recommendations:
            logger.info(f"  * {recommendation}")
        for error in report.errors[:5]:
            logger.warning(f"  - {error.message}")
        return 0

    result = pipeline.run(request)

    # Display results
    logger.info("=" * 60)
    logger.info("IMPORT COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Parents created: {result.products_created}")
    logger.info(f"Variants created: {result.variants_created}")
    logger.info(f"Variants updated: {result.variants_updated}")
    logger.info(f"Rows skipped: {result.skipped_rows}")

    if result.errors:
        logger.warning(f"Errors encountered: {len(result.errors)}")
        for error in result.errors[:5]:  # Show first 5 errors
            logger.warning(f"  - {error.message}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run a catalog import or analysis."""
    argv = list(sys.argv[1:] if argv is None else argv)
    configure_logging()

    if argv and argv[0] == "analyze":
        args = build_analyze_parser().parse_args(argv[1:])
        command = analyze
        target = args.file_path
    else:
        args = build_import_parser().parse_args(argv)
        command = None
        target = args.file_path

    if not Path(target).exists():
        logger.error(f"File not found: {target}")
        return 1

    try:
        if command is analyze:
            return analyze(target)
        return run_import(args)
    except (ImportPipelineError, json.JSONDecodeError) as e:
        logger.error(f"Import failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
