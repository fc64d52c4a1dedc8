"""
Bulk Import Session
Scoped storage tuning for bulk inserts, restored on every exit path.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)


# (setting, bulk value) pairs per dialect
SQLITE_BULK_SETTINGS: List[Tuple[str, Any]] = [
    ("foreign_keys", "OFF"),
    ("synchronous", "OFF"),
    ("journal_mode", "MEMORY"),
    ("temp_store", "MEMORY"),
    ("cache_size", 10000),
]

POSTGRES_BULK_SETTINGS: List[Tuple[str, Any]] = [
    ("synchronous_commit", "off"),
]


class BulkImportSession:
    """
    Optimized session whose lifetime brackets the chunk loop.

    On enter the current value of every tuning setting is read and the bulk
    value applied. On exit each recorded value is written back, whether the
    chunk loop returned or raised. Settings are per connection, so all chunk
    work must run on the connection yielded here.

    Usage:
        with BulkImportSession(engine) as connection:
            factory = create_session_factory(connection)
            processor.process_in_chunks(rows, handler)
    """

    def __init__(self, bind: Union[Engine, Connection]):
        self._owns_connection = isinstance(bind, Engine)
        self._bind = bind
        self.connection: Optional[Connection] = None
        self.original_settings: Dict[str, Any] = {}

    def __enter__(self) -> Connection:
        self.connection = self._bind.connect() if self._owns_connection else self._bind
        try:
            self._end_transaction()
            self.original_settings = self.read_settings()
            self._apply(self._bulk_settings())
        except Exception:
            self._release()
            raise

        logger.info(f"Bulk settings applied ({self.dialect}): {self.original_settings}")
        return self.connection

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._release()
        return False

    @property
    def dialect(self) -> str:
        return self._bind.dialect.name

    def _bulk_settings(self) -> List[Tuple[str, Any]]:
        if self.dialect == "sqlite":
            return SQLITE_BULK_SETTINGS
        if self.dialect == "postgresql":
            return POSTGRES_BULK_SETTINGS
        logger.debug(f"No bulk settings defined for dialect {self.dialect}")
        return []

    def read_settings(self) -> Dict[str, Any]:
        """Current value of every tunable setting on this connection."""
        settings = {}
        for name, _ in self._bulk_settings():
            if self.dialect == "sqlite":
                value = self.connection.exec_driver_sql(f"PRAGMA {name}").scalar()
            else:
                value = self.connection.exec_driver_sql(f"SHOW {name}").scalar()
            settings[name] = value
        self._end_transaction()
        return settings

    def _apply(self, settings) -> None:
        items = settings.items() if isinstance(settings, dict) else settings
        for name, value in items:
            if self.dialect == "sqlite":
                self.connection.exec_driver_sql(f"PRAGMA {name} = {value}")
            else:
                self.connection.exec_driver_sql(f"SET {name} TO {value}")
        self._end_transaction()

    def _release(self) -> None:
        try:
            self._restore()
        finally:
            if self._owns_connection and self.connection is not None:
                self.connection.close()

    def _restore(self) -> None:
        if self.connection is None or not self.original_settings:
            return

        # Roll back whatever a failed chunk left open; PRAGMAs are ignored inside a transaction
        if self.connection.in_transaction():
            self.connection.rollback()

        self._apply(self.original_settings)
        logger.info(f"Bulk settings restored ({self.dialect})")

    def _end_transaction(self) -> None:
        if self.connection.in_transaction():
            self.connection.commit()
