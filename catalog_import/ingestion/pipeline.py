"""
Catalog Import Pipeline
Load -> transform -> chunked creation, with progress tracking and a dry-run mode.
"""

import logging
import time
from collections import Counter
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.engine import Engine

from catalog_import.config.settings import ImportSettings, get_settings
from catalog_import.db.bulk_session import BulkImportSession
from catalog_import.db.session import create_session_factory, get_engine
from catalog_import.errors import ConfigurationError, ImportCancelled
from catalog_import.ingestion.chunk_processor import ChunkedProcessor
from catalog_import.ingestion.field_rules import canonical_field
from catalog_import.ingestion.grouping.parent_grouper import ParentGrouper
from catalog_import.ingestion.grouping.sku_patterns import SkuPatternAnalyzer
from catalog_import.ingestion.product_creator import ProductCreator
from catalog_import.ingestion.progress import ProgressTracker
from catalog_import.ingestion.readers import RowLoader
from catalog_import.ingestion.transformer import FieldTransformationEngine
from catalog_import.models.imports import (
    DryRunReport,
    ImportErrorEntry,
    ImportMode,
    ImportRequest,
    ImportResult,
)
from catalog_import.models.rows import TransformationResult, TransformedRow
from catalog_import.models.security import SecurityScanner

logger = logging.getLogger(__name__)

# Share of the progress bar spent loading and transforming
PREPARE_PERCENT = 10.0
GROUPS_PREVIEW_LIMIT = 10
HIGH_ERROR_RATE = 0.1


class CatalogImportPipeline:
    """
    Runs one import request end to end.

    Chunks execute inside a BulkImportSession, each in its own transaction,
    so a failing chunk rolls back alone and aborts the run while earlier
    chunks stay committed.

    Args:
        settings: Import settings
        engine: Database engine (defaults to the process engine)
        tracker: Progress tracker; without one the run is untracked
        memory_probe: Memory usage source for the chunk engine
    """

    def __init__(
        self,
        settings: Optional[ImportSettings] = None,
        engine: Optional[Engine] = None,
        tracker: Optional[ProgressTracker] = None,
        memory_probe: Optional[Callable[[], int]] = None,
    ):
        self.settings = settings or get_settings()
        self.engine = engine or get_engine()
        self.tracker = tracker
        self.memory_probe = memory_probe

        self.processor: Optional[ChunkedProcessor] = None
        # Serial dates in the loaded file count from 1904-01-01
        self.date_1904 = False

    # === LOADING ===

    def load_rows(self, request: ImportRequest, max_rows: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Mapped rows of the selected sheets.

        Raises:
            ConfigurationError: Empty selection or mapping, unreadable file
        """
        if not request.selected_sheets:
            raise ConfigurationError("No worksheets selected")
        if not request.column_mapping:
            raise ConfigurationError("Column mapping is empty")

        limit = max_rows if max_rows is not None else request.max_rows
        loader = RowLoader(request.file_path)
        rows = loader.load_mapped(request.selected_sheets, request.column_mapping, max_rows=limit)
        self.date_1904 = loader.date_1904
        return rows

    def transform(self, raw_rows: List[Dict[str, Any]]) -> TransformationResult:
        return FieldTransformationEngine(settings=self.settings, date_1904=self.date_1904).transform(raw_rows)

    # === IMPORT ===

    def run(self, request: ImportRequest, import_id: Optional[str] = None) -> ImportResult:
        """
        Execute an import, advancing the progress record when one is given.

        Returns:
            Merged ImportResult

        Raises:
            ImportCancelled: The run was cancelled before or during processing
            Exception: Any chunk-level failure, after the record is marked failed
        """
        tracked = self.tracker is not None and import_id is not None
        if tracked:
            record = self.tracker.start(import_id)
            if record.status.is_terminal:
                raise ImportCancelled(import_id)

        started = time.perf_counter()
        try:
            result = self._run(request, import_id if tracked else None)
        except ImportCancelled:
            logger.info(f"Import {import_id} stopped after cancellation")
            raise
        except Exception as e:
            logger.error(f"Import {import_id or request.file_path} failed: {e}", exc_info=True)
            if tracked:
                self.tracker.fail(import_id, str(e))
            raise

        logger.info(
            f"Import finished in {time.perf_counter() - started:.2f}s: "
            f"{result.products_created} parents, {result.variants_created} variants created, "
            f"{result.variants_updated} updated, {len(result.errors)} errors"
        )
        if tracked:
            self.tracker.complete(import_id, result.model_dump(mode="json"))
        return result

    def _run(self, request: ImportRequest, import_id: Optional[str]) -> ImportResult:
        raw_rows = self.load_rows(request)
        transformed = self.transform(raw_rows)

        result = ImportResult()
        for error in transformed.errors:
            result.add_error(error.message, row_number=error.row_number, field=error.field)

        self._report(import_id, PREPARE_PERCENT, f"Transformed {len(raw_rows)} rows")

        self.processor = ChunkedProcessor(
            settings=self.settings,
            memory_probe=self.memory_probe,
            checkpoint=self._checkpoint(import_id),
        )

        rows = transformed.transformed_rows
        with BulkImportSession(self.engine) as connection:
            creator = ProductCreator(
                create_session_factory(connection),
                settings=self.settings,
                import_id=import_id,
                on_row_progress=self._row_progress(import_id, len(rows)),
            )

            if request.mode == ImportMode.AUTO_GENERATE_PARENTS:
                result.merge(self._create_auto(rows, creator, request, import_id))
            else:
                chunk_results = self.processor.process_in_chunks(
                    rows,
                    creator.create_standard,
                    on_progress=self._chunk_progress(import_id),
                    chunk_size=request.chunk_size,
                )
                for chunk_result in chunk_results:
                    result.merge(chunk_result)

        return result

    def _create_auto(
        self,
        rows: List[TransformedRow],
        creator: ProductCreator,
        request: ImportRequest,
        import_id: Optional[str],
    ) -> ImportResult:
        """Grouping phase over every row, then parents, then chunked variants."""
        result = ImportResult()

        # A row without a SKU never becomes a variant; grouping it would leave an empty parent
        variant_rows = [row for row in rows if not row.get("is_parent") and row.get("variant_sku")]
        result.skipped_rows += len(rows) - len(variant_rows)

        grouper = ParentGrouper()
        groups = grouper.group(variant_rows)
        parent_ids = creator.create_group_parents(groups)
        result.products_created += len(parent_ids)

        def handler(chunk):
            return creator.create_grouped_variants(chunk, grouper.row_index, parent_ids)

        chunk_results = self.processor.process_in_chunks(
            list(enumerate(variant_rows)),
            handler,
            on_progress=self._chunk_progress(import_id),
            chunk_size=request.chunk_size,
        )
        for chunk_result in chunk_results:
            result.merge(chunk_result)
        return result

    # === PROGRESS ===

    def _checkpoint(self, import_id: Optional[str]) -> Optional[Callable[[], None]]:
        if import_id is None:
            return None

        def check() -> None:
            if self.tracker.is_cancelled(import_id):
                raise ImportCancelled(import_id)

        return check

    def _chunk_progress(self, import_id: Optional[str]):
        def on_progress(event: Dict[str, Any]) -> None:
            percent = event["percent"] or 0.0
            logger.info(
                f"Chunk {event['chunk_index']}: {event['processed_rows']}/{event['total_rows']} rows, "
                f"memory {event['memory_usage']} MB"
            )
            self._report(
                import_id,
                PREPARE_PERCENT + percent * (100 - PREPARE_PERCENT) / 100,
                f"Processed {event['processed_rows']} of {event['total_rows']} rows",
            )

        return on_progress

    def _row_progress(self, import_id: Optional[str], total_rows: int):
        if import_id is None:
            return None

        def on_rows(processed: int) -> None:
            percent = processed / total_rows * 100 if total_rows else 100.0
            self._report(
                import_id,
                PREPARE_PERCENT + percent * (100 - PREPARE_PERCENT) / 100,
                f"Created {processed} variants",
                persist=False,
            )

        return on_rows

    def _report(self, import_id: Optional[str], percent: float, message: str, persist: bool = True) -> None:
        if import_id is None or self.tracker is None:
            return
        self.tracker.update(import_id, percent, message, persist=persist)

    # === DRY RUN ===

    def dry_run(self, request: ImportRequest) -> DryRunReport:
        """
        Analysis, transformation and security checks without persistence.

        Loads at most settings.dry_run_max_rows rows.
        """
        raw_rows = self.load_rows(request, max_rows=self.settings.dry_run_max_rows)
        transformed = self.transform(raw_rows)
        rows = transformed.transformed_rows

        report = DryRunReport(
            total_rows=len(raw_rows),
            valid_rows=transformed.success_count,
            error_count=transformed.error_count,
        )
        for error in transformed.errors:
            report.errors.append(
                ImportErrorEntry(
                    message=error.message,
                    context={"row_number": error.row_number, "field": error.field},
                )
            )

        parent_rows = [row for row in rows if row.get("is_parent")]
        variant_rows = [row for row in rows if not row.get("is_parent")]
        report.parent_rows = len(parent_rows)
        report.variant_rows = len(variant_rows)

        if request.mode == ImportMode.AUTO_GENERATE_PARENTS:
            groupable = [row for row in variant_rows if row.get("variant_sku")]
            for group in ParentGrouper().group(groupable)[:GROUPS_PREVIEW_LIMIT]:
                report.groups_preview.append(
                    {
                        "group_key": group.group_key,
                        "name": group.inferred_parent_attributes.get("name"),
                        "parent_sku": group.inferred_parent_attributes.get("parent_sku"),
                        "method": group.method,
                        "variants": len(group.member_row_indices),
                    }
                )

        report.recommendations = self._recommendations(request, raw_rows, report, variant_rows)
        logger.info(
            f"Dry run: {report.valid_rows}/{report.total_rows} valid, "
            f"{len(report.recommendations)} recommendation(s)"
        )
        return report

    def _recommendations(
        self,
        request: ImportRequest,
        raw_rows: List[Dict[str, Any]],
        report: DryRunReport,
        variant_rows: List[TransformedRow],
    ) -> List[str]:
        recommendations = []
        mapped_fields = {canonical_field(f) for f in request.column_mapping.values()}

        if "variant_sku" not in mapped_fields:
            recommendations.append("No column is mapped to variant_sku; variants cannot be created without a SKU")
        if "product_name" not in mapped_fields:
            recommendations.append("No column is mapped to product_name; every row will fail validation")

        if report.total_rows and report.error_count / report.total_rows > HIGH_ERROR_RATE:
            rate = report.error_count / report.total_rows * 100
            recommendations.append(
                f"{rate:.0f}% of rows failed validation; check the column mapping and data formats"
            )

        if (
            request.mode == ImportMode.STANDARD
            and not report.parent_rows
            and "parent_name" not in mapped_fields
        ):
            recommendations.append(
                "No parent rows or parent_name column found; consider auto_generate_parents mode"
            )

        skus = [row.get("variant_sku") for row in variant_rows if row.get("variant_sku")]
        duplicates = [sku for sku, count in Counter(skus).items() if count > 1]
        if duplicates:
            recommendations.append(
                f"{len(duplicates)} duplicate SKU(s) found (e.g. {duplicates[0]}); later rows update earlier ones"
            )

        sku_report = SkuPatternAnalyzer.analyze(skus)
        if request.mode == ImportMode.AUTO_GENERATE_PARENTS and sku_report["total"] and sku_report["coverage"] < 0.5:
            recommendations.append("Most SKUs match no known pattern; parents will be grouped by product name")
        elif request.mode == ImportMode.STANDARD and sku_report["confidence"] >= 0.7:
            recommendations.append(
                "SKUs follow a consistent pattern; auto_generate_parents mode can infer parents from them"
            )

        flagged = 0
        for raw in raw_rows[: self.settings.dry_run_check_rows]:
            values = {k: v for k, v in raw.items() if k != "_row_number"}
            if SecurityScanner.warnings_for_row(values):
                flagged += 1
        if flagged:
            recommendations.append(f"{flagged} row(s) contain suspicious content and will be sanitized")

        if not recommendations:
            recommendations.append("No issues found; the file is ready to import")
        return recommendations
