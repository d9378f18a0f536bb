"""
Survey Draw Runtime — Integration Test

Scenario:
  Phase 1: JSON file backend writes atomically and keeps a .bak copy
  Phase 2: sqlite cache round-trips records in list order
  Phase 3: HistoryStore caps at 200, newest first
  Phase 4: Failing primary falls back to the cache
  Phase 5: Session draw → remove → supplement → save
  Phase 6: Same selection saved twice refreshes the newest record
  Phase 7: History edit / delete
  Phase 8: Busy guard on draw, supplement and save; failed draw, reset
  Phase 9: Observability (get_metrics returns valid data)

Exit 0 on success, 1 on failure.
"""

from __future__ import annotations

import json
import os
import shutil
import sqlite3
import sys
import tempfile
import threading
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from survey_kernel.constants import ACTIVE_STATUS, HISTORY_CAP, DOWNWEIGHT
from survey_kernel.errors import EmptyDrawPoolError, NotLoadedError
from survey_kernel.rng import DeterministicRNG
from survey_kernel.weighting import calculate_weight
from survey_runtime.file_history import FileHistoryBackend, HistoryFormatError
from survey_runtime.history_repository import HistoryRepository
from survey_runtime.history_store import (
    HistoryStore,
    HistoryStoreError,
    MemoryHistoryBackend,
)
from survey_runtime.session import DrawPhase, DrawSession, SessionStateError


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def _row(name, dept, position="工程师"):
    return {
        "name": name, "gender": "男", "department": dept,
        "subDepartment": "一组", "position": position, "status": ACTIVE_STATUS,
    }


def build_roster() -> list:
    """Quality: 30 (quota 3), Ops: 5 (quota 1), one Ops head."""
    rows = [_row(f"Q{i:02d}", "Quality") for i in range(30)]
    rows += [_row(f"O{i}", "Ops") for i in range(5)]
    rows.append(_row("O-head", "Ops", position="部长"))
    return rows


def _record(i: int) -> dict:
    return {
        "id": f"id_{i}",
        "date": f"2026-01-01T00:00:{i % 60:02d}Z",
        "selectedEmployees": [{"name": f"n{i}", "department": "Ops"}],
    }


class _BrokenBackend:
    """Primary that fails every call."""

    def __init__(self) -> None:
        self.calls = 0

    def load_all(self):
        self.calls += 1
        raise ConnectionError("database unreachable")

    def replace_all(self, records):
        self.calls += 1
        raise ConnectionError("database unreachable")

    def close(self):
        pass


def _session(seed: int = 7) -> DrawSession:
    session = DrawSession(history_store=HistoryStore(), rng=DeterministicRNG(seed))
    session.load_roster(build_roster())
    return session


# ═══════════════════════════════════════════════════════════════
#  PHASE 1–2: BACKENDS
# ═══════════════════════════════════════════════════════════════

def test_file_backend_atomic_write_and_backup():
    tmp = tempfile.mkdtemp(prefix="survey_history_")
    try:
        backend = FileHistoryBackend(os.path.join(tmp, "data"))
        assert backend.load_all() == []
        assert not backend.backup_path.exists()

        backend.replace_all([_record(1)])
        backend.replace_all([_record(2), _record(1)])
        assert [r["id"] for r in backend.load_all()] == ["id_2", "id_1"]

        previous = json.loads(backend.backup_path.read_text(encoding="utf-8"))
        assert [r["id"] for r in previous] == ["id_1"]
        assert not os.path.exists(os.path.join(tmp, "data", "draw_history.json.tmp"))

        backend.path.write_text('{"not": "a list"}', encoding="utf-8")
        try:
            backend.load_all()
        except HistoryFormatError as exc:
            assert "list" in str(exc)
        else:
            raise AssertionError("expected HistoryFormatError")
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def test_sqlite_cache_round_trip():
    tmp = tempfile.mkdtemp(prefix="survey_cache_")
    try:
        repo = HistoryRepository(os.path.join(tmp, "cache.db"))
        records = [_record(3), {"date": "2026-01-01", "selectedEmployees": []}, _record(1)]
        repo.replace_all(records)
        assert repo.count() == 3
        assert repo.load_all() == records

        repo.replace_all([_record(9)])
        assert [r["id"] for r in repo.load_all()] == ["id_9"]
        repo.close()
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def test_sqlite_cache_rejects_duplicate_ids():
    tmp = tempfile.mkdtemp(prefix="survey_cache_")
    try:
        repo = HistoryRepository(os.path.join(tmp, "cache.db"))
        repo.replace_all([_record(1)])
        try:
            repo.replace_all([_record(2), _record(2)])
        except sqlite3.IntegrityError:
            pass
        else:
            raise AssertionError("expected IntegrityError on a repeated id")
        # failed write rolled back, previous list intact
        assert [r["id"] for r in repo.load_all()] == ["id_1"]
        repo.close()
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


# ═══════════════════════════════════════════════════════════════
#  PHASE 3–4: HISTORY STORE
# ═══════════════════════════════════════════════════════════════

def test_history_round_trip_newest_first():
    store = HistoryStore()
    store.save_history(_record(1))
    saved = store.save_history(_record(2))
    history = store.get_history()
    assert history[0] == saved
    assert [r["id"] for r in history] == ["id_2", "id_1"]


def test_history_capped_oldest_dropped():
    store = HistoryStore()
    for i in range(250):
        store.save_history(_record(i))
    history = store.get_history()
    assert len(history) == HISTORY_CAP
    assert history[0]["id"] == "id_249"
    assert history[-1]["id"] == "id_50"


def test_history_update_and_delete():
    store = HistoryStore()
    store.save_history(_record(1))
    merged = store.update_history_item("id_1", {"periodLabel": "x"})
    assert merged["periodLabel"] == "x"
    assert merged["date"] == _record(1)["date"]
    assert store.update_history_item("missing", {"a": 1}) is None
    assert store.delete_history_item("id_1") is True
    assert store.delete_history_item("id_1") is False
    assert store.get_history() == []


def test_primary_failure_falls_back_to_cache():
    broken = _BrokenBackend()
    cache = MemoryHistoryBackend([_record(1)])
    store = HistoryStore(primary=broken, cache=cache)

    assert [r["id"] for r in store.get_history()] == ["id_1"]
    assert not store.primary_available

    store.save_history(_record(2))
    assert [r["id"] for r in cache.load_all()] == ["id_2", "id_1"]
    # not retried once marked unavailable
    assert broken.calls == 1


def test_primary_read_is_mirrored_into_cache():
    tmp = tempfile.mkdtemp(prefix="survey_mirror_")
    try:
        primary = FileHistoryBackend(tmp)
        primary.replace_all([_record(5)])
        cache = MemoryHistoryBackend()
        store = HistoryStore(primary=primary, cache=cache)
        store.get_history()
        assert [r["id"] for r in cache.load_all()] == ["id_5"]
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def test_cache_failure_without_primary_raises():
    store = HistoryStore(cache=_BrokenBackend())
    try:
        store.get_history()
    except HistoryStoreError as exc:
        assert exc.operation == "read"
    else:
        raise AssertionError("expected HistoryStoreError")


# ═══════════════════════════════════════════════════════════════
#  PHASE 5–7: SESSION WORKFLOW
# ═══════════════════════════════════════════════════════════════

def test_session_draw_remove_supplement_save():
    session = _session()
    assert session.phase == DrawPhase.IDLE

    results = session.perform_draw()
    assert session.phase == DrawPhase.COMPLETED
    by_dept = {r.department: r for r in results}
    assert len(by_dept["Quality"].employees) == 3
    assert len(by_dept["Ops"].employees) == 1
    assert by_dept["Ops"].employees[0].name != "O-head"

    kept = by_dept["Quality"].employees[0].name
    gone = [e.name for e in by_dept["Quality"].employees[1:]]
    for name in gone:
        assert session.remove_employee(name, "Quality") is not None
    assert session.remove_employee("nobody", "Quality") is None
    assert session.phase == DrawPhase.SUPPLEMENT_PENDING
    assert session.shortfalls() == {"Quality": 2}
    assert session.needs_supplement

    try:
        session.save()
    except SessionStateError:
        pass
    else:
        raise AssertionError("save must wait for the supplement")

    supplements = session.supplement_draw()
    assert len(supplements) == 1 and supplements[0].actual_count == 2
    new_names = {e.name for e in supplements[0].employees}
    assert kept not in new_names
    assert not new_names & set(gone)
    assert session.phase == DrawPhase.COMPLETED
    assert session.shortfalls() == {}

    record = session.save(year=2026, quarter=3)
    assert session.phase == DrawPhase.SAVED
    assert record["totalSelected"] == 4
    assert record["departmentBreakdown"] == {"Quality": 3, "Ops": 1}
    assert record["periodQuarter"] == "第三季度"
    assert record["rosterTotalCount"] == 36
    assert session.get_history()[0]["id"] == record["id"]


def test_same_selection_refreshes_newest_record():
    session = _session()
    session.perform_draw()
    first = session.save(
        year=2026, quarter=2, timestamp=datetime(2026, 6, 1, tzinfo=timezone.utc),
    )

    # same results saved again from a completed phase
    session._phase = DrawPhase.COMPLETED
    second = session.save(
        year=2026, quarter=3, timestamp=datetime(2026, 9, 1, tzinfo=timezone.utc),
    )
    history = session.get_history()
    assert len(history) == 1
    assert second["id"] == first["id"]
    assert history[0]["periodQuarter"] == "第三季度"
    assert history[0]["date"].startswith("2026-09-01")


def test_history_feeds_weighting():
    session = _session()
    session.perform_draw()
    first = session.save(timestamp=datetime(2026, 6, 1, tzinfo=timezone.utc))
    session.perform_draw(excluded=[e["name"] for e in first["selectedEmployees"]])
    session.save(timestamp=datetime(2026, 9, 1, tzinfo=timezone.utc))

    history = session.get_history()
    assert len(history) == 2
    # disjoint selections: nobody sits in both records
    for emp in history[0]["selectedEmployees"]:
        assert calculate_weight(emp["name"], history) == 1.0

    session._phase = DrawPhase.COMPLETED
    session.save(timestamp=datetime(2026, 12, 1, tzinfo=timezone.utc))
    history = session.get_history()
    assert len(history) == 2
    for emp in history[0]["selectedEmployees"]:
        assert calculate_weight(emp["name"], history) == 1.0

    session.history_store.save_history(dict(history[0], id="id_copy", date="2027-01-01T00:00:00Z"))
    history = session.get_history()
    for emp in history[0]["selectedEmployees"]:
        assert calculate_weight(emp["name"], history) == DOWNWEIGHT


def test_history_edit_and_delete():
    session = _session()
    results = session.perform_draw()
    record = session.save()
    target = results[0].employees[0]

    updated = session.edit_history_remove_employee(record["id"], target.name, target.department)
    assert updated["totalSelected"] == record["totalSelected"] - 1
    assert target.name not in {e["name"] for e in updated["selectedEmployees"]}
    assert session.get_history()[0]["totalSelected"] == updated["totalSelected"]
    assert session.edit_history_remove_employee("missing", "x", "y") is None

    assert session.delete_history_record(record["id"])
    assert not session.delete_history_record(record["id"])
    assert session.get_history() == []


# ═══════════════════════════════════════════════════════════════
#  PHASE 8: GUARDS
# ═══════════════════════════════════════════════════════════════

def test_concurrent_draw_is_noop():
    session = _session()
    session._busy.acquire()
    try:
        assert session.perform_draw() is None
        assert session.phase == DrawPhase.IDLE
    finally:
        session._busy.release()
    assert session.perform_draw() is not None


class _GatedBackend(MemoryHistoryBackend):
    """Cache backend that can hold a read or a write until released."""

    def __init__(self) -> None:
        super().__init__()
        self.gate_reads = False
        self.gate_writes = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def _hold(self) -> None:
        self.entered.set()
        self.release.wait(5)

    def load_all(self):
        if self.gate_reads:
            self._hold()
        return super().load_all()

    def replace_all(self, records):
        if self.gate_writes:
            self._hold()
        super().replace_all(records)


def test_supplement_and_save_during_draw_are_noops():
    backend = _GatedBackend()
    session = DrawSession(history_store=HistoryStore(cache=backend), rng=DeterministicRNG(3))
    session.load_roster(build_roster())
    backend.gate_reads = True

    worker = threading.Thread(target=session.perform_draw)
    worker.start()
    try:
        assert backend.entered.wait(5)
        assert session.phase == DrawPhase.DRAWING
        assert session.supplement_draw() is None
        assert session.save() is None
    finally:
        backend.release.set()
        worker.join(5)
    assert session.phase == DrawPhase.COMPLETED


def test_concurrent_saves_write_one_record():
    backend = _GatedBackend()
    session = DrawSession(history_store=HistoryStore(cache=backend), rng=DeterministicRNG(3))
    session.load_roster(build_roster())
    session.perform_draw()
    backend.gate_writes = True

    saved = []
    worker = threading.Thread(target=lambda: saved.append(session.save()))
    worker.start()
    try:
        assert backend.entered.wait(5)
        assert session.save() is None
    finally:
        backend.release.set()
        worker.join(5)

    assert len(saved) == 1 and saved[0] is not None
    assert session.phase == DrawPhase.SAVED
    assert len(session.get_history()) == 1
    try:
        session.save()
    except SessionStateError as exc:
        assert exc.phase == DrawPhase.SAVED
    else:
        raise AssertionError("a saved session cannot save again")


def test_failed_draw_sets_failed_phase():
    session = DrawSession(history_store=HistoryStore())
    try:
        session.perform_draw()
    except NotLoadedError:
        pass
    else:
        raise AssertionError("expected NotLoadedError")
    assert session.phase == DrawPhase.FAILED

    session.load_roster([_row("a", "Ops")])
    try:
        session.perform_draw(excluded=["a"])
    except EmptyDrawPoolError:
        pass
    else:
        raise AssertionError("expected EmptyDrawPoolError")
    assert session.phase == DrawPhase.FAILED


def test_draw_survives_unreadable_history():
    store = HistoryStore(cache=_BrokenBackend())
    session = DrawSession(history_store=store, rng=DeterministicRNG(1))
    session.load_roster(build_roster())
    assert session.perform_draw()
    assert session.phase == DrawPhase.COMPLETED


def test_remove_before_draw_rejected():
    session = _session()
    try:
        session.remove_employee("Q00", "Quality")
    except SessionStateError as exc:
        assert exc.phase == DrawPhase.IDLE
    else:
        raise AssertionError("expected SessionStateError")


def test_selection_and_reset():
    session = _session()
    selected = session.set_selected_sub_departments(["运行A值"])
    assert "运行A值" in selected
    assert "运行部办公室" in selected

    session.perform_draw()
    session.reset()
    assert session.phase == DrawPhase.IDLE
    assert session.results == []
    assert "运行A值" not in session.selected_sub_departments
    assert not session.engine.is_loaded


# ═══════════════════════════════════════════════════════════════
#  PHASE 9: OBSERVABILITY
# ═══════════════════════════════════════════════════════════════

def test_metrics():
    session = DrawSession(history_store=HistoryStore())
    metrics = session.get_metrics().to_dict()
    assert metrics["phase"] == "idle"
    assert metrics["rosterTotal"] == 0
    assert metrics["pendingShortfall"] == 0

    session.load_roster(build_roster())
    session.perform_draw()
    metrics = session.get_metrics()
    assert metrics.roster_total == 36
    assert metrics.department_count == 2
    assert metrics.selected_count == 4
    assert metrics.last_draw_latency_ms >= 0
    assert metrics.primary_backend_available is False

    store = HistoryStore(primary=_BrokenBackend())
    metrics = DrawSession(history_store=store).get_metrics()
    assert any("primary" in w for w in metrics.warnings)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def main() -> None:
    tests = [(name, fn) for name, fn in globals().items()
             if name.startswith("test_") and callable(fn)]
    failed = 0
    for name, fn in tests:
        _header(name)
        try:
            fn()
            print("  [PASS]")
        except Exception as exc:
            print(f"  [FAIL] {exc}")
            failed += 1

    print(f"\n  {len(tests) - failed} passed, {failed} failed")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
