"""
Import request and result models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImportMode(str, Enum):
    """How parent products are determined."""

    STANDARD = "standard"  # Parent rows are explicit, variants look theirs up
    AUTO_GENERATE_PARENTS = "auto_generate_parents"  # Parents inferred by grouping


class ImportRequest(BaseModel):
    """
    Read-only input to the whole pipeline.
    column_mapping maps a raw column index to a canonical field name.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    file_path: str
    selected_sheets: List[str] = Field(default_factory=list)
    column_mapping: Dict[int, str] = Field(default_factory=dict)
    mode: ImportMode = ImportMode.STANDARD
    chunk_size: Optional[int] = None
    max_rows: Optional[int] = None

    @field_validator("column_mapping", mode="before")
    @classmethod
    def coerce_mapping_keys(cls, v):
        """JSON round trips turn integer keys into strings."""
        if isinstance(v, dict):
            return {int(k): f for k, f in v.items() if f}
        return v


class ImportErrorEntry(BaseModel):
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)


class ImportResult(BaseModel):
    """
    Counts plus errors. Mutable accumulator merged across chunks.
    """

    products_created: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    skipped_rows: int = 0
    errors: List[ImportErrorEntry] = Field(default_factory=list)

    def add_error(self, message: str, **context) -> None:
        self.errors.append(ImportErrorEntry(message=message, context=context))

    def merge(self, other: "ImportResult") -> "ImportResult":
        self.products_created += other.products_created
        self.variants_created += other.variants_created
        self.variants_updated += other.variants_updated
        self.skipped_rows += other.skipped_rows
        self.errors.extend(other.errors)
        return self


@dataclass
class ParentGroup:
    """Rows clustered under one inferred parent. Lives for one import run."""

    group_key: str
    member_row_indices: List[int] = field(default_factory=list)
    inferred_parent_attributes: Dict[str, Any] = field(default_factory=dict)
    method: str = "name"  # 'sku_pattern' or 'name'


class WorksheetInfo(BaseModel):
    index: int
    name: str
    headers: List[str] = Field(default_factory=list)
    row_count: int = 0
    row_count_estimated: bool = False
    preview: str = ""


class WorksheetAnalysis(BaseModel):
    worksheets: List[WorksheetInfo] = Field(default_factory=list)
    truncated: bool = False


class SheetHeaders(BaseModel):
    """Headers and a small sample of the first selected sheet, for column mapping."""

    sheet_name: str
    headers: List[str] = Field(default_factory=list)
    sample_rows: List[List[Any]] = Field(default_factory=list)


class DryRunReport(BaseModel):
    total_rows: int = 0
    valid_rows: int = 0
    error_count: int = 0
    parent_rows: int = 0
    variant_rows: int = 0
    errors: List[ImportErrorEntry] = Field(default_factory=list)
    groups_preview: List[Dict[str, Any]] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
