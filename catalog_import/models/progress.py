"""
Progress record model for import runs.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ProgressStatus(str, Enum):
    """Import run states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStatus.COMPLETED, ProgressStatus.FAILED, ProgressStatus.CANCELLED)


class ProgressRecord(BaseModel):
    """Pollable view of one import run."""

    model_config = ConfigDict(use_enum_values=False)

    id: str
    status: ProgressStatus = ProgressStatus.PENDING
    progress_percent: float = 0.0
    message: Optional[str] = None
    elapsed_time: float = 0.0
    result_data: Optional[Dict[str, Any]] = None
    result_key: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
