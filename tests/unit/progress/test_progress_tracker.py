"""
Progress state machine, cache fallback, result spill and cleanup
"""

import os
import time
from datetime import timedelta

import pytest

from catalog_import.db.models import ImportProgress
from catalog_import.errors import ProgressStoreError
from catalog_import.ingestion.progress import ProgressTracker, cache_key, utcnow
from catalog_import.models.progress import ProgressStatus


def test_create_starts_pending(tracker, cache):
    record = tracker.create()

    assert record.status == ProgressStatus.PENDING
    assert record.progress_percent == 0.0
    assert cache.exists(cache_key(record.id))
    assert cache.ttls[cache_key(record.id)] == 86400


def test_full_lifecycle(tracker):
    import_id = tracker.create().id

    assert tracker.start(import_id).status == ProgressStatus.PROCESSING
    assert tracker.update(import_id, 42.5, "Chunk 2").progress_percent == 42.5

    record = tracker.complete(import_id, {"variants_created": 3})

    assert record.status == ProgressStatus.COMPLETED
    assert record.progress_percent == 100.0
    assert record.completed_at is not None
    assert tracker.get_result(import_id) == {"variants_created": 3}


def test_update_clamps_percent(tracker):
    import_id = tracker.create().id
    tracker.start(import_id)

    assert tracker.update(import_id, 140).progress_percent == 100.0
    assert tracker.update(import_id, -3).progress_percent == 0.0


def test_update_ignored_unless_processing(tracker):
    import_id = tracker.create().id
    assert tracker.update(import_id, 50) is None
    assert tracker.get(import_id).progress_percent == 0.0


def test_cache_only_update_skips_durable_store(tracker, session_factory):
    import_id = tracker.create().id
    tracker.start(import_id)

    tracker.update(import_id, 30, persist=False)

    assert tracker.get(import_id).progress_percent == 30.0
    with session_factory() as session:
        assert session.get(ImportProgress, import_id).progress_percent == 0.0


def test_cache_only_update_without_cache_is_noop(session_factory, settings):
    tracker = ProgressTracker(session_factory=session_factory, settings=settings)
    import_id = tracker.create().id
    tracker.start(import_id)

    assert tracker.update(import_id, 30, persist=False) is None


def test_cancel_pending_never_processes(tracker):
    import_id = tracker.create().id

    assert tracker.cancel(import_id) is True
    record = tracker.start(import_id)

    assert record.status == ProgressStatus.CANCELLED
    assert record.started_at is None
    assert tracker.is_cancelled(import_id)


def test_cancel_processing(tracker):
    import_id = tracker.create().id
    tracker.start(import_id)

    assert tracker.cancel(import_id) is True
    assert tracker.get(import_id).status == ProgressStatus.CANCELLED


def test_cancel_landing_during_a_progress_tick_is_kept(tracker, session_factory, cache, settings, monkeypatch):
    import_id = tracker.create().id
    tracker.start(import_id)
    other_worker = ProgressTracker(session_factory=session_factory, cache=cache, settings=settings)
    read = tracker.get

    def read_then_cancel(run_id):
        record = read(run_id)
        other_worker.cancel(run_id)
        return record

    monkeypatch.setattr(tracker, "get", read_then_cancel)
    assert tracker.update(import_id, 40, persist=False) is None
    monkeypatch.undo()

    assert tracker.get(import_id).status == ProgressStatus.CANCELLED
    assert tracker.is_cancelled(import_id)
    tracker.complete(import_id, {"variants_created": 1})
    assert tracker.get(import_id).status == ProgressStatus.CANCELLED


def test_stale_cache_cannot_reopen_a_cancelled_run(tracker, session_factory, settings):
    import_id = tracker.create().id
    tracker.start(import_id)
    # Cancelled by a process that cannot reach the cache
    ProgressTracker(session_factory=session_factory, settings=settings).cancel(import_id)
    assert tracker.get(import_id).status == ProgressStatus.PROCESSING

    assert tracker.is_cancelled(import_id)
    assert tracker.update(import_id, 60) is None
    record = tracker.complete(import_id, {"variants_created": 1})

    assert record.status == ProgressStatus.CANCELLED
    assert tracker.get(import_id).status == ProgressStatus.CANCELLED
    with session_factory() as session:
        assert session.get(ImportProgress, import_id).status == "cancelled"


@pytest.mark.parametrize("finish", ["complete", "fail", "cancel"])
def test_terminal_states_are_sticky(tracker, finish):
    import_id = tracker.create().id
    tracker.start(import_id)
    if finish == "complete":
        tracker.complete(import_id, {})
    elif finish == "fail":
        tracker.fail(import_id, "boom")
    else:
        tracker.cancel(import_id)
    final = tracker.get(import_id).status

    tracker.start(import_id)
    tracker.update(import_id, 10)
    tracker.complete(import_id, {"late": True})
    tracker.fail(import_id, "late")

    assert tracker.get(import_id).status == final
    assert tracker.cancel(import_id) is (final == ProgressStatus.CANCELLED)


def test_fail_discards_result(tracker):
    import_id = tracker.create().id
    tracker.start(import_id)

    record = tracker.fail(import_id, "chunk 3 failed")

    assert record.status == ProgressStatus.FAILED
    assert record.error_message == "chunk 3 failed"
    assert tracker.get_result(import_id) is None


def test_large_result_spills_to_temp_storage(tracker, settings, tmp_path):
    settings.inline_result_limit_bytes = 100
    import_id = tracker.create().id
    tracker.start(import_id)
    result = {"errors": [{"row_number": i, "message": "Invalid price"} for i in range(50)]}

    record = tracker.complete(import_id, result)

    assert record.result_data is None
    assert record.result_key == f"import_result_{import_id}"
    assert (tmp_path / "temp_data" / f"import_result_{import_id}.json").exists()
    assert tracker.get_result(import_id) == result


def test_small_result_stays_inline(tracker, settings):
    import_id = tracker.create().id
    tracker.start(import_id)

    record = tracker.complete(import_id, {"variants_created": 1})

    assert record.result_key is None
    assert record.result_data == {"variants_created": 1}


def test_cache_miss_falls_back_to_durable_store(tracker, cache):
    import_id = tracker.create().id
    tracker.start(import_id)
    cache.store.clear()

    record = tracker.get(import_id)

    assert record.status == ProgressStatus.PROCESSING
    assert cache.exists(cache_key(import_id))


def test_works_without_cache(session_factory, settings):
    tracker = ProgressTracker(session_factory=session_factory, settings=settings)
    import_id = tracker.create().id
    tracker.start(import_id)
    tracker.update(import_id, 60)

    assert tracker.get(import_id).progress_percent == 60.0


def test_unknown_id_raises(tracker):
    with pytest.raises(ProgressStoreError):
        tracker.get("does-not-exist")


def test_elapsed_time_frozen_after_completion(tracker):
    import_id = tracker.create().id
    tracker.start(import_id)
    tracker.complete(import_id, {})

    first = tracker.get(import_id).elapsed_time
    time.sleep(0.05)

    assert tracker.get(import_id).elapsed_time == first
    assert first >= 0.0


def test_cleanup_removes_old_records_and_files(tracker, session_factory, cache, settings, tmp_path):
    old_id = tracker.create().id
    new_id = tracker.create().id
    with session_factory() as session:
        session.get(ImportProgress, old_id).created_at = utcnow() - timedelta(days=10)
        session.commit()

    temp_dir = tmp_path / "temp_data"
    temp_dir.mkdir(parents=True, exist_ok=True)
    old_file = temp_dir / f"import_result_{old_id}.json"
    old_file.write_text("{}")
    stale = time.time() - 10 * 86400
    os.utime(old_file, (stale, stale))
    fresh_file = temp_dir / f"import_result_{new_id}.json"
    fresh_file.write_text("{}")

    counts = tracker.cleanup(days_old=7)

    assert counts == {"records_deleted": 1, "files_deleted": 1}
    assert not old_file.exists()
    assert fresh_file.exists()
    assert not cache.exists(cache_key(old_id))
    with pytest.raises(ProgressStoreError):
        tracker.get(old_id)
    assert tracker.get(new_id).status == ProgressStatus.PENDING
