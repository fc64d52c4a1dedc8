"""
Catalog Import Tasks
Background execution of imports, dry runs and progress cleanup.
"""

import logging
from typing import Any, Dict, Optional

from .celery_app import app

logger = logging.getLogger(__name__)


def build_tracker():
    """Progress tracker on the process engine and the Redis cache."""
    from ..caching.redis_cache import get_redis_cache
    from ..ingestion.progress import ProgressTracker

    return ProgressTracker(cache=get_redis_cache())


def submit_import(request, tracker=None) -> str:
    """
    Register a pending progress record and enqueue the import.

    Args:
        request: ImportRequest
        tracker: Progress tracker (defaults to build_tracker())

    Returns:
        Progress id to poll
    """
    tracker = tracker or build_tracker()
    record = tracker.create()
    run_catalog_import.delay(request.model_dump(mode="json"), record.id)
    logger.info(f"Import {record.id} queued for {request.file_path}")
    return record.id


@app.task(bind=True, name="tasks.run_catalog_import")
def run_catalog_import(self, request: Dict[str, Any], import_id: str) -> Dict[str, Any]:
    """
    Run a catalog import in the background.

    The progress record moves pending -> processing -> completed/failed, or
    stays cancelled when the caller cancelled it first.

    Args:
        request: ImportRequest as a JSON dict
        import_id: Progress record id created by submit_import

    Returns:
        Dictionary with status and import counts
    """
    from ..errors import ImportCancelled
    from ..ingestion.pipeline import CatalogImportPipeline
    from ..models.imports import ImportRequest

    try:
        logger.info(f"Starting catalog import {import_id}")

        pipeline = CatalogImportPipeline(tracker=build_tracker())
        result = pipeline.run(ImportRequest.model_validate(request), import_id=import_id)

        return {
            "status": "success",
            "import_id": import_id,
            "products_created": result.products_created,
            "variants_created": result.variants_created,
            "variants_updated": result.variants_updated,
            "errors": len(result.errors),
        }

    except ImportCancelled:
        logger.info(f"Catalog import {import_id} cancelled")
        return {"status": "cancelled", "import_id": import_id}

    except Exception as e:
        logger.error(f"Error running catalog import {import_id}: {e}", exc_info=True)
        return {
            "status": "error",
            "import_id": import_id,
            "error": str(e),
        }


@app.task(bind=True, name="tasks.run_dry_run")
def run_dry_run(self, request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate an import request without writing products.

    Returns:
        Dictionary with the dry-run report
    """
    from ..ingestion.pipeline import CatalogImportPipeline
    from ..models.imports import ImportRequest

    try:
        logger.info(f"Starting dry run for {request.get('file_path')}")
        report = CatalogImportPipeline().dry_run(ImportRequest.model_validate(request))
        return {"status": "success", "report": report.model_dump(mode="json")}

    except Exception as e:
        logger.error(f"Error during dry run: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
        }


@app.task(bind=True, name="tasks.cleanup_import_progress")
def cleanup_import_progress(self, days_old: Optional[int] = None) -> Dict[str, Any]:
    """
    Delete progress records and spilled results older than days_old.

    Args:
        days_old: Age threshold in days (default: settings.cleanup_days_old)

    Returns:
        Dictionary with cleanup counts
    """
    try:
        logger.info(f"Starting import progress cleanup (older than {days_old or 'default'} days)")
        counts = build_tracker().cleanup(days_old)
        return {"status": "success", **counts}

    except Exception as e:
        logger.error(f"Error during progress cleanup: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
        }
