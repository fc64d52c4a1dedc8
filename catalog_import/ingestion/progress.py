"""
Import Progress Tracker
State machine for import runs, dual-written to Redis and the database.

    pending -> processing -> completed | failed | cancelled
    pending -> cancelled

The Redis copy is read first; the ImportProgress row is the fallback once the
cache entry has expired or Redis is unavailable. Terminal states are sticky.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from catalog_import.config.settings import ImportSettings, get_settings
from catalog_import.db.models import ImportProgress
from catalog_import.db.session import create_session_factory, get_engine
from catalog_import.errors import ProgressStoreError
from catalog_import.models.progress import ProgressRecord, ProgressStatus

logger = logging.getLogger(__name__)

CACHE_PREFIX = "import_progress:"
RESULT_FILE_PREFIX = "import_result_"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def cache_key(import_id: str) -> str:
    return f"{CACHE_PREFIX}{import_id}"


class ProgressTracker:
    """
    Create, advance and read import progress records.

    Args:
        session_factory: Factory for durable-store sessions
        cache: Object with get/set/delete (RedisCache in production), or None
        settings: Import settings (cache TTL, inline result limit, temp dir)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        cache: Optional[Any] = None,
        settings: Optional[ImportSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or create_session_factory(get_engine())
        self.cache = cache

    @property
    def temp_dir(self) -> Path:
        return Path(self.settings.temp_data_dir)

    # === TRANSITIONS ===

    def create(self, import_id: Optional[str] = None, message: str = "Queued") -> ProgressRecord:
        """Register a new run in the pending state."""
        import_id = import_id or str(uuid.uuid4())
        now = utcnow()

        with self.session_factory() as session:
            session.add(
                ImportProgress(
                    id=import_id,
                    status=ProgressStatus.PENDING.value,
                    progress_percent=0.0,
                    message=message,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()

        record = ProgressRecord(id=import_id, message=message, created_at=now)
        self._cache_record(record)
        logger.info(f"Import {import_id} created")
        return record

    def start(self, import_id: str, message: str = "Processing") -> ProgressRecord:
        """pending -> processing. A terminal record is returned unchanged."""
        return self._transition(
            import_id,
            ProgressStatus.PROCESSING,
            allowed_from=(ProgressStatus.PENDING,),
            message=message,
            started_at=utcnow(),
        )

    def update(
        self,
        import_id: str,
        percent: float,
        message: Optional[str] = None,
        persist: bool = True,
    ) -> Optional[ProgressRecord]:
        """
        Record progress of a processing run.

        Args:
            import_id: Run id
            percent: 0-100
            message: Optional status line
            persist: Also write the durable record; row-level ticks inside a
                chunk transaction pass False and only refresh the cache
        """
        if not persist and self.cache is None:
            return None

        changes = {"progress_percent": round(max(0.0, min(100.0, percent)), 2)}
        if message is not None:
            changes["message"] = message

        if persist:
            if not self._write_durable(import_id, changes, allowed_from=(ProgressStatus.PROCESSING,)):
                self._cache_record(self._load_durable(import_id))
                logger.debug(f"Ignoring progress for import {import_id}: no longer processing")
                return None
            record = self._load_durable(import_id)
        else:
            record = self.get(import_id)
            if record.status != ProgressStatus.PROCESSING:
                logger.debug(f"Ignoring progress for import {import_id} in state {record.status.value}")
                return None
            record = record.model_copy(update=changes)

        record = self._publish(record)
        if record.status != ProgressStatus.PROCESSING:
            return None
        return self._with_elapsed(record)

    def complete(self, import_id: str, result: Dict[str, Any]) -> ProgressRecord:
        """processing -> completed; large results are spilled to temp storage."""
        payload = json.dumps(result, default=str)
        result_data: Optional[Dict[str, Any]] = result
        result_key: Optional[str] = None

        if len(payload.encode("utf-8")) > self.settings.inline_result_limit_bytes:
            result_key = f"{RESULT_FILE_PREFIX}{import_id}"
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            (self.temp_dir / f"{result_key}.json").write_text(payload, encoding="utf-8")
            result_data = None
            logger.info(f"Result of import {import_id} spilled to {result_key} ({len(payload)} bytes)")

        return self._transition(
            import_id,
            ProgressStatus.COMPLETED,
            allowed_from=(ProgressStatus.PROCESSING,),
            progress_percent=100.0,
            message="Import completed",
            result_data=result_data,
            result_key=result_key,
            completed_at=utcnow(),
        )

    def fail(self, import_id: str, error: str) -> ProgressRecord:
        """processing -> failed. The partial result is discarded."""
        return self._transition(
            import_id,
            ProgressStatus.FAILED,
            allowed_from=(ProgressStatus.PENDING, ProgressStatus.PROCESSING),
            message="Import failed",
            error_message=error,
            result_data=None,
            result_key=None,
            completed_at=utcnow(),
        )

    def cancel(self, import_id: str) -> bool:
        """
        Request cancellation. The running handler notices at its next checkpoint.

        Returns:
            True if the record moved to cancelled
        """
        record = self._transition(
            import_id,
            ProgressStatus.CANCELLED,
            allowed_from=(ProgressStatus.PENDING, ProgressStatus.PROCESSING),
            message="Import cancelled",
            completed_at=utcnow(),
        )
        return record.status == ProgressStatus.CANCELLED

    def _transition(
        self,
        import_id: str,
        target: ProgressStatus,
        allowed_from: tuple,
        **changes,
    ) -> ProgressRecord:
        changes["status"] = target
        if not self._write_durable(import_id, changes, allowed_from):
            record = self._load_durable(import_id)
            logger.warning(
                f"Import {import_id}: {record.status.value} -> {target.value} not allowed, ignored"
            )
            self._cache_record(record)
            return self._with_elapsed(record)

        record = self._publish(self._load_durable(import_id))
        logger.info(f"Import {import_id}: {record.status.value}")
        return self._with_elapsed(record)

    # === READS ===

    def get(self, import_id: str) -> ProgressRecord:
        """
        Current record, cache first.

        Raises:
            ProgressStoreError: If no record exists
        """
        if self.cache is not None:
            cached = self.cache.get(cache_key(import_id))
            if cached:
                return self._with_elapsed(ProgressRecord.model_validate(cached))

        record = self._load_durable(import_id)
        self._cache_record(record)
        return self._with_elapsed(record)

    def is_cancelled(self, import_id: str) -> bool:
        """Checkpoint read. Goes to the durable record, which a stale cache write cannot roll back."""
        return self._load_durable(import_id).status == ProgressStatus.CANCELLED

    def get_result(self, import_id: str) -> Optional[Dict[str, Any]]:
        """Result payload of a completed run, re-read from temp storage if spilled."""
        record = self.get(import_id)
        if record.result_data is not None:
            return record.result_data
        if not record.result_key:
            return None

        path = self.temp_dir / f"{record.result_key}.json"
        if not path.exists():
            logger.warning(f"Spilled result {record.result_key} for import {import_id} is gone")
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    # === MAINTENANCE ===

    def cleanup(self, days_old: Optional[int] = None) -> Dict[str, int]:
        """
        Delete progress records and spilled results older than days_old.

        Returns:
            Counts of deleted records and files
        """
        days_old = self.settings.cleanup_days_old if days_old is None else days_old
        cutoff = utcnow() - timedelta(days=days_old)

        with self.session_factory() as session:
            stale = session.query(ImportProgress).filter(ImportProgress.created_at < cutoff).all()
            for row in stale:
                if self.cache is not None:
                    self.cache.delete(cache_key(row.id))
                session.delete(row)
            session.commit()
            records_deleted = len(stale)

        files_deleted = 0
        if self.temp_dir.exists():
            cutoff_ts = cutoff.replace(tzinfo=timezone.utc).timestamp()
            for path in self.temp_dir.glob(f"{RESULT_FILE_PREFIX}*.json"):
                if path.stat().st_mtime < cutoff_ts:
                    path.unlink()
                    files_deleted += 1

        logger.info(
            f"Progress cleanup (older than {days_old} days): "
            f"{records_deleted} records, {files_deleted} result files"
        )
        return {"records_deleted": records_deleted, "files_deleted": files_deleted}

    # === HELPERS ===

    def _write_durable(self, import_id: str, changes: Dict[str, Any], allowed_from: tuple) -> bool:
        """
        Apply changes only while the stored status is one of allowed_from.

        Returns:
            True if the row was updated
        """
        values = {
            key: value.value if isinstance(value, ProgressStatus) else value
            for key, value in changes.items()
        }
        values["updated_at"] = utcnow()

        with self.session_factory() as session:
            updated = (
                session.query(ImportProgress)
                .filter(
                    ImportProgress.id == import_id,
                    ImportProgress.status.in_([status.value for status in allowed_from]),
                )
                .update(values, synchronize_session=False)
            )
            session.commit()
        return updated > 0

    def _load_durable(self, import_id: str) -> ProgressRecord:
        with self.session_factory() as session:
            row = session.get(ImportProgress, import_id)
            if row is None:
                raise ProgressStoreError(import_id)
            return self._to_record(row)

    def _publish(self, record: ProgressRecord) -> ProgressRecord:
        """
        Cache a record, then re-check the durable status.

        A transition committed by another process between our read and the
        cache write would otherwise be hidden behind the stale copy.
        """
        self._cache_record(record)
        if self.cache is None:
            return record

        durable = self._load_durable(record.id)
        if durable.status != record.status:
            self._cache_record(durable)
            return durable
        return record

    def _cache_record(self, record: ProgressRecord) -> None:
        if self.cache is None:
            return
        self.cache.set(cache_key(record.id), record.to_cache(), ttl=self.settings.progress_cache_ttl)

    @staticmethod
    def _to_record(row: ImportProgress) -> ProgressRecord:
        return ProgressRecord(
            id=row.id,
            status=ProgressStatus(row.status),
            progress_percent=row.progress_percent or 0.0,
            message=row.message,
            result_data=row.result_data,
            result_key=row.result_key,
            error_message=row.error_message,
            created_at=row.created_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    @staticmethod
    def _with_elapsed(record: ProgressRecord) -> ProgressRecord:
        """Seconds since start (or creation while pending), frozen once finished."""
        since = record.started_at or record.created_at
        if since is None:
            return record
        until = record.completed_at if record.status.is_terminal and record.completed_at else utcnow()
        elapsed = max(0.0, (until - since).total_seconds())
        return record.model_copy(update={"elapsed_time": round(elapsed, 3)})
