"""
Data Ingestion Package
Worksheet analysis, field transformation, chunked processing and parent/variant
creation for catalog imports.
"""

from .pipeline import CatalogImportPipeline
from .progress import ProgressTracker
from .worksheet_analyzer import WorksheetAnalyzer

__all__ = ["CatalogImportPipeline", "ProgressTracker", "WorksheetAnalyzer"]
