"""
Draw Session — orchestrates engine + history persistence.

One session is one in-process draw workflow:

  IDLE → DRAWING → COMPLETED | FAILED
  COMPLETED → SUPPLEMENT_PENDING   (a removal left a shortfall)
  SUPPLEMENT_PENDING → COMPLETED   (after supplement_draw)
  COMPLETED → SAVED                (terminal, persisted)

The session owns the sub-department selection and passes it to the
engine explicitly on every call. A draw, supplement or save that starts
while another one runs is a no-op returning None.

History read failures never fail a draw: the draw proceeds with no
history (all weights 1.0) and a warning is logged.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from survey_kernel.constants import DEFAULT_SUB_DEPARTMENTS
from survey_kernel.domain_types import (
    DepartmentResult,
    DrawPoolEntry,
    Employee,
    EmployeeSnapshot,
    StatsSummary,
    SupplementResult,
)
from survey_kernel.engine import DrawEngine, merge_supplement_results, remove_employee
from survey_kernel.history import (
    build_history_record,
    current_quarter,
    period_label,
    quarter_name,
    remove_employee_from_record,
    same_selection,
)
from survey_kernel.invariants import validate_results
from survey_kernel.pool import effective_selection
from survey_kernel.rng import DeterministicRNG

from .history_store import HistoryStore

if TYPE_CHECKING:
    from .observability import SessionMetrics

logger = logging.getLogger(__name__)


class DrawPhase(str, enum.Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    COMPLETED = "completed"
    FAILED = "failed"
    SUPPLEMENT_PENDING = "supplement_pending"
    SAVED = "saved"


class SessionStateError(Exception):
    """Raised when an operation is not allowed in the current phase."""

    def __init__(self, operation: str, phase: DrawPhase) -> None:
        self.operation = operation
        self.phase = phase
        super().__init__(
            f"Cannot {operation} while session is {phase.value!r}"
        )


class DrawSession:
    """
    Orchestrates the DrawEngine with a persistent HistoryStore.

    Current results are decoupled snapshots; removing someone from them
    never touches the roster.
    """

    def __init__(
        self,
        engine: Optional[DrawEngine] = None,
        history_store: Optional[HistoryStore] = None,
        rng: Optional[DeterministicRNG] = None,
    ) -> None:
        self._engine = engine or DrawEngine()
        self._history = history_store or HistoryStore()
        self._rng = rng or DeterministicRNG()
        self._selected = effective_selection()
        self._results: List[DepartmentResult] = []
        self._removed: List[EmployeeSnapshot] = []
        self._phase = DrawPhase.IDLE
        self._busy = threading.Lock()
        self._last_draw_ms: float = 0.0

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def engine(self) -> DrawEngine:
        return self._engine

    @property
    def history_store(self) -> HistoryStore:
        return self._history

    @property
    def phase(self) -> DrawPhase:
        return self._phase

    @property
    def results(self) -> List[DepartmentResult]:
        return self._results

    @property
    def removed(self) -> List[EmployeeSnapshot]:
        return list(self._removed)

    @property
    def selected_sub_departments(self) -> List[str]:
        return sorted(self._selected)

    @property
    def last_draw_ms(self) -> float:
        return self._last_draw_ms

    # ------------------------------------------------------------------
    # Roster + selection
    # ------------------------------------------------------------------

    def load_roster(self, rows: Sequence[Union[Employee, Mapping[str, Any]]]) -> StatsSummary:
        summary = self._engine.load_roster(rows)
        self._clear_results()
        return summary

    def set_selected_sub_departments(self, names: Iterable[str]) -> List[str]:
        """Replace the opt-in selection. Defaults are always re-added."""
        self._selected = effective_selection(list(names))
        return self.selected_sub_departments

    def get_draw_pool(self) -> Dict[str, DrawPoolEntry]:
        return self._engine.get_draw_pool(self._selected)

    def get_stats_summary(self) -> StatsSummary:
        return self._engine.get_stats_summary()

    def get_diagnostics(self) -> dict:
        return self._engine.get_diagnostics(self._selected)

    def shortfalls(self) -> Dict[str, int]:
        if not self._results:
            return {}
        return self._engine.compute_shortfalls(self._results, self._selected)

    @property
    def needs_supplement(self) -> bool:
        return bool(self._removed) and bool(self.shortfalls())

    # ------------------------------------------------------------------
    # Draw
    # ------------------------------------------------------------------

    def perform_draw(
        self, excluded: Iterable[Any] = (),
    ) -> Optional[List[DepartmentResult]]:
        """
        Run a full draw. Returns None when another draw is in progress.

        Named engine errors (NotLoadedError, EmptyDrawPoolError) set the
        phase to FAILED and propagate.
        """
        if not self._busy.acquire(blocking=False):
            logger.info("Draw already in progress; ignoring perform_draw()")
            return None
        try:
            self._phase = DrawPhase.DRAWING
            start = time.perf_counter()
            history = self._load_history()
            results = self._engine.perform_draw(
                history, self._selected, excluded, self._rng,
            )
            self._last_draw_ms = round((time.perf_counter() - start) * 1000.0, 2)
            self._results = results
            self._removed = []
            self._phase = DrawPhase.COMPLETED
            logger.info(
                "Draw completed: %d selected across %d department(s)",
                sum(len(r.employees) for r in results), len(results),
            )
            return results
        except Exception:
            self._phase = DrawPhase.FAILED
            raise
        finally:
            self._busy.release()

    def remove_employee(self, name: str, department: str) -> Optional[EmployeeSnapshot]:
        """Drop one person from the current results; None if not present."""
        if self._phase not in (DrawPhase.COMPLETED, DrawPhase.SUPPLEMENT_PENDING):
            raise SessionStateError("remove an employee", self._phase)
        removed = remove_employee(self._results, name, department)
        if removed is None:
            return None
        self._removed.append(removed)
        if self.shortfalls():
            self._phase = DrawPhase.SUPPLEMENT_PENDING
        return removed

    def supplement_draw(self) -> Optional[List[SupplementResult]]:
        """
        Refill shortfalls left by removals and merge into the results.
        Returns None when a draw is in progress.
        """
        if not self._busy.acquire(blocking=False):
            logger.info("Draw already in progress; ignoring supplement_draw()")
            return None
        try:
            if self._phase not in (DrawPhase.COMPLETED, DrawPhase.SUPPLEMENT_PENDING):
                raise SessionStateError("supplement", self._phase)
            if not self._removed:
                return []
            history = self._load_history()
            supplements = self._engine.supplement_draw(
                self._results, self._removed, history, self._selected, self._rng,
            )
            merge_supplement_results(self._results, supplements)
            validate_results(self._results, self.get_draw_pool())
            self._phase = DrawPhase.COMPLETED
            if not supplements:
                logger.info("Supplement draw found no remaining candidates")
            return supplements
        finally:
            self._busy.release()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(
        self,
        year: Optional[int] = None,
        quarter: Optional[Union[int, str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[dict]:
        """
        Persist the current results as a history record.

        If the newest stored record selected exactly the same names, that
        record's date and period are refreshed instead of appending a
        duplicate. Returns None when a draw or another save is running.
        """
        if not self._busy.acquire(blocking=False):
            logger.info("Session busy; ignoring save()")
            return None
        try:
            if self._phase != DrawPhase.COMPLETED:
                raise SessionStateError("save", self._phase)
            if not any(r.employees for r in self._results):
                raise SessionStateError("save an empty result", self._phase)

            timestamp = timestamp or datetime.now(timezone.utc)
            year = year or timestamp.year
            if quarter is None:
                quarter = current_quarter(timestamp)
            quarter_label = quarter_name(quarter) if isinstance(quarter, int) else quarter

            record = build_history_record(
                self._results,
                roster_total=self._engine.roster_total,
                eligible_count=len(self._engine.eligible),
                year=year,
                quarter=quarter_label,
                timestamp=timestamp,
            ).to_dict()

            history = self._load_history()
            saved: Optional[dict] = None
            if history and isinstance(history[0], Mapping) and history[0].get("id") \
                    and same_selection(history[0], record):
                saved = self._history.update_history_item(history[0]["id"], {
                    "date": record["date"],
                    "periodYear": year,
                    "periodQuarter": quarter_label,
                    "periodLabel": period_label(year, quarter_label),
                })
                if saved is not None:
                    logger.info("Same selection as last record; refreshed %s", saved["id"])
            if saved is None:
                saved = self._history.save_history(record)
                logger.info("Saved history record %s", saved["id"])

            self._phase = DrawPhase.SAVED
            return saved
        finally:
            self._busy.release()

    def get_history(self) -> List[dict]:
        return self._history.get_history()

    def edit_history_remove_employee(
        self, record_id: str, name: str, department: str,
    ) -> Optional[dict]:
        """Irreversibly drop one person from a stored record."""
        for record in self._history.get_history():
            if isinstance(record, Mapping) and record.get("id") == record_id:
                updated = remove_employee_from_record(record, name, department)
                return self._history.update_history_item(record_id, updated)
        return None

    def delete_history_record(self, record_id: str) -> bool:
        return self._history.delete_history_item(record_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Forget roster and results; selection back to the defaults."""
        self._engine.reset()
        self._selected = set(DEFAULT_SUB_DEPARTMENTS)
        self._clear_results()

    def get_metrics(self) -> "SessionMetrics":
        from .observability import collect_metrics
        return collect_metrics(self)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _clear_results(self) -> None:
        self._results = []
        self._removed = []
        self._phase = DrawPhase.IDLE

    def _load_history(self) -> List[dict]:
        try:
            return self._history.get_history()
        except Exception as exc:
            logger.warning("History unavailable, drawing without history: %s", exc)
            return []
