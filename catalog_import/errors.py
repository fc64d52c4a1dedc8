"""
Import Errors
Exception hierarchy for the catalog import pipeline.
"""

from typing import Any, Dict, Optional


class ImportPipelineError(Exception):
    """Base exception for import pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ImportPipelineError):
    """Raised before any row is processed: unreadable file, empty selection, bad mapping."""

    pass


class TransformationException(ImportPipelineError):
    """Raised when a single field of a row cannot be transformed."""

    def __init__(self, field: str, reason: str, wrap: bool = True):
        self.field = field
        self.reason = reason
        message = f"Field '{field}' transformation failed: {reason}" if field and wrap else reason
        super().__init__(message=message, details={"field": field})


class GroupResolutionError(ImportPipelineError):
    """Raised when a variant row cannot be linked back to its parent group."""

    def __init__(self, row_number: int, group_key: Optional[str] = None):
        self.row_number = row_number
        self.group_key = group_key
        super().__init__(
            message=f"Row {row_number}: no parent group could be resolved",
            details={"row_number": row_number, "group_key": group_key},
        )


class ImportCancelled(ImportPipelineError):
    """Raised at a chunk checkpoint once the import has been cancelled."""

    def __init__(self, import_id: str):
        self.import_id = import_id
        super().__init__(message=f"Import {import_id} was cancelled", details={"id": import_id})


class ProgressStoreError(ImportPipelineError):
    """Raised when a progress record does not exist."""

    def __init__(self, import_id: str):
        super().__init__(message=f"Progress record not found: {import_id}", details={"id": import_id})
