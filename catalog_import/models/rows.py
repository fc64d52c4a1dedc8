"""
Row models for the transformation stage.
Raw sheet rows in, typed canonical rows and row-level errors out.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class RawRow:
    """Cell values of one sheet row in column order. Consumed once."""

    row_number: int
    values: List[Any] = field(default_factory=list)

    def cell(self, index: int) -> Any:
        if 0 <= index < len(self.values):
            return self.values[index]
        return None

    def is_empty(self) -> bool:
        return all(v is None or (isinstance(v, str) and v.strip() == "") for v in self.values)


class TransformedRow(BaseModel):
    """
    Canonical field name -> typed, sanitized value, plus the source row number.
    Frozen once the engine produces it.
    """

    model_config = ConfigDict(frozen=True)

    row_number: int
    values: Dict[str, Any] = Field(default_factory=dict)

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.values.get(field_name, default)

    def __getitem__(self, field_name: str) -> Any:
        return self.values[field_name]

    def __contains__(self, field_name: str) -> bool:
        return field_name in self.values


class TransformationError(BaseModel):
    """One row-level failure. field is None for row-wide problems."""

    row_number: int
    field: Optional[str] = None
    message: str
    raw_snapshot: Dict[str, Any] = Field(default_factory=dict)


class TransformationResult(BaseModel):
    """Accumulated output of a transform run."""

    success_count: int = 0
    error_count: int = 0
    transformed_rows: List[TransformedRow] = Field(default_factory=list)
    errors: List[TransformationError] = Field(default_factory=list)

    def add_row(self, row: TransformedRow) -> None:
        self.transformed_rows.append(row)
        self.success_count += 1

    def add_error(self, error: TransformationError) -> None:
        self.errors.append(error)
        self.error_count += 1

    @property
    def error_rows(self) -> List[int]:
        return sorted({e.row_number for e in self.errors})
