"""
Pipeline data models: rows, requests and results, progress records.
"""

from .imports import (
    DryRunReport,
    ImportMode,
    ImportRequest,
    ImportResult,
    ParentGroup,
    WorksheetAnalysis,
    WorksheetInfo,
)
from .progress import ProgressRecord, ProgressStatus
from .rows import RawRow, TransformationError, TransformationResult, TransformedRow

__all__ = [
    "DryRunReport",
    "ImportMode",
    "ImportRequest",
    "ImportResult",
    "ParentGroup",
    "WorksheetAnalysis",
    "WorksheetInfo",
    "ProgressRecord",
    "ProgressStatus",
    "RawRow",
    "TransformationError",
    "TransformationResult",
    "TransformedRow",
]
