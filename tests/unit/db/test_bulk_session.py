"""
Bulk tuning settings are applied for the chunk loop and restored afterwards
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from catalog_import.db.bulk_session import SQLITE_BULK_SETTINGS, BulkImportSession
from catalog_import.db.models import ParentProduct
from catalog_import.db.session import create_session_factory
from catalog_import.ingestion.chunk_processor import ChunkedProcessor


def read_pragmas(connection):
    values = {name: connection.exec_driver_sql(f"PRAGMA {name}").scalar() for name, _ in SQLITE_BULK_SETTINGS}
    if connection.in_transaction():
        connection.commit()
    return values


def failing_chunk_handler(factory, fail_at=2):
    """Inserts one parent per row; the chunk at fail_at raises mid-transaction."""
    calls = {"n": 0}

    def handler(chunk):
        with factory() as session, session.begin():
            for i in chunk:
                session.add(ParentProduct(name=f"Blind {i}", slug=f"blind-{i}"))
            session.flush()
            if calls["n"] == fail_at:
                raise RuntimeError("chunk 3 exploded")
        calls["n"] += 1
        return len(chunk)

    return handler


def test_settings_restored_after_failure_in_chunk_3_of_5(engine, settings, steady_memory):
    with engine.connect() as connection:
        connection.exec_driver_sql("PRAGMA foreign_keys = ON")
        before = read_pragmas(connection)
        assert before["foreign_keys"] == 1

        processor = ChunkedProcessor(settings, memory_probe=steady_memory)
        seen_during = {}

        with pytest.raises(RuntimeError, match="chunk 3 exploded"):
            with BulkImportSession(connection) as bulk:
                seen_during.update(read_pragmas(bulk))
                factory = create_session_factory(bulk)
                processor.process_in_chunks(list(range(50)), failing_chunk_handler(factory), chunk_size=10)

        assert seen_during["foreign_keys"] == 0
        assert seen_during["synchronous"] == 0
        assert read_pragmas(connection) == before

        # Chunks 1 and 2 committed, chunk 3 rolled back, 4 and 5 never ran
        count = connection.execute(select(func.count()).select_from(ParentProduct)).scalar()
        assert count == 20
        assert processor.chunk_stats[-1].chunk_index == 2


def test_settings_restored_after_success(engine, settings, steady_memory):
    with engine.connect() as connection:
        before = read_pragmas(connection)

        with BulkImportSession(connection) as bulk:
            factory = create_session_factory(bulk)
            results = ChunkedProcessor(settings, memory_probe=steady_memory).process_in_chunks(
                list(range(30)), failing_chunk_handler(factory, fail_at=-1), chunk_size=10
            )

        assert results == [10, 10, 10]
        assert read_pragmas(connection) == before


def test_engine_bind_opens_and_closes_its_own_connection(engine):
    bulk_session = BulkImportSession(engine)

    with bulk_session as connection:
        assert connection.exec_driver_sql("PRAGMA synchronous").scalar() == 0

    assert connection.closed
    assert bulk_session.original_settings["cache_size"] is not None


def test_engine_connection_closed_when_bulk_settings_fail(engine, monkeypatch):
    monkeypatch.setattr(
        BulkImportSession, "_bulk_settings", lambda self: [("foreign_keys", "OFF"), ("synchronous", "bogus value")]
    )
    bulk_session = BulkImportSession(engine)

    with pytest.raises(OperationalError):
        with bulk_session:
            pass

    assert bulk_session.connection.closed
