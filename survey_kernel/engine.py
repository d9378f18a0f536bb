"""
Survey Draw Kernel — Engine

Top-level orchestrator. Holds the loaded roster and runs the
filter → weight → sample pipeline per department. Validates every
result via invariants.py.

The engine owns no selection state: the sub-department selection is an
explicit argument on every pool/draw call.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from .diagnostics import compute_diagnostics
from .domain_types import (
    DepartmentResult,
    DepartmentStats,
    DrawPoolEntry,
    Employee,
    EmployeeSnapshot,
    StatsSummary,
    SupplementResult,
    rows_to_employees,
)
from .errors import EmptyDrawPoolError, NoEligibleEmployeesError, NotLoadedError
from .grouping import compute_department_stats, summarize
from .invariants import validate_results
from .pool import build_draw_pool
from .rng import DeterministicRNG
from .roster import filter_drawable, filter_eligible
from .sampler import draw_without_replacement
from .weighting import compute_weights

logger = logging.getLogger(__name__)

PersonRef = Union[str, EmployeeSnapshot, Employee, Mapping[str, Any]]


def _name_of(person: PersonRef) -> str:
    if isinstance(person, str):
        return person
    if isinstance(person, Mapping):
        return str(person.get("name", ""))
    return person.name


def _names(people: Iterable[PersonRef]) -> Set[str]:
    return {_name_of(p) for p in people}


def _unique_by_name(employees: Iterable[Employee]) -> List[Employee]:
    """Name is the identity key; the first roster row for a name wins."""
    seen: Set[str] = set()
    unique: List[Employee] = []
    for emp in employees:
        if emp.name in seen:
            continue
        seen.add(emp.name)
        unique.append(emp)
    return unique


class DrawEngine:
    """
    Stateful engine over a loaded roster.

    Stats are derived once per roster load. The draw pool is rebuilt on
    every call from (stats, selection).
    """

    def __init__(self) -> None:
        self._employees: Optional[List[Employee]] = None
        self._eligible: List[Employee] = []
        self._stats: Dict[str, DepartmentStats] = {}

    # -- State access -------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._employees is not None

    @property
    def stats(self) -> Dict[str, DepartmentStats]:
        self._require_loaded()
        return self._stats

    @property
    def roster_total(self) -> int:
        return len(self._employees) if self._employees is not None else 0

    @property
    def eligible(self) -> List[Employee]:
        return list(self._eligible)

    def _require_loaded(self) -> None:
        if self._employees is None:
            raise NotLoadedError()

    # -- Roster -------------------------------------------------------------

    def load_roster(self, rows: Sequence[Union[Employee, Mapping[str, Any]]]) -> StatsSummary:
        """
        Validate rows, filter the eligible population, compute stats.

        Raises RosterValidationError for unusable rows and
        NoEligibleEmployeesError when nobody survives the filter. On
        failure the engine is left unloaded.
        """
        self.reset()
        if rows and all(isinstance(r, Employee) for r in rows):
            employees = list(rows)
        else:
            employees = rows_to_employees(rows)

        eligible = filter_eligible(employees)
        if not eligible:
            raise NoEligibleEmployeesError(len(employees))

        self._employees = employees
        self._eligible = eligible
        self._stats = compute_department_stats(eligible)
        logger.info(
            "Roster loaded: %d rows, %d eligible, %d departments",
            len(employees), len(eligible), len(self._stats),
        )
        return self.get_stats_summary()

    def reset(self) -> None:
        self._employees = None
        self._eligible = []
        self._stats = {}

    # -- Views --------------------------------------------------------------

    def get_draw_pool(
        self, selected_sub_departments: Optional[Iterable[str]] = None,
    ) -> Dict[str, DrawPoolEntry]:
        self._require_loaded()
        return build_draw_pool(self._stats, selected_sub_departments)

    def get_stats_summary(self) -> StatsSummary:
        self._require_loaded()
        return summarize(self.roster_total, self._eligible, self._stats)

    def get_diagnostics(
        self, selected_sub_departments: Optional[Iterable[str]] = None,
    ) -> dict:
        return compute_diagnostics(
            self.stats, self.get_draw_pool(selected_sub_departments),
        )

    def compute_shortfalls(
        self,
        current_results: Sequence[DepartmentResult],
        selected_sub_departments: Optional[Iterable[str]] = None,
    ) -> Dict[str, int]:
        """Department → number still missing against its pool quota."""
        counts = {r.department: len(r.employees) for r in current_results}
        shortfalls: Dict[str, int] = {}
        for dept, entry in self.get_draw_pool(selected_sub_departments).items():
            missing = entry.draw_count - counts.get(dept, 0)
            if missing > 0:
                shortfalls[dept] = missing
        return shortfalls

    # -- Draw ---------------------------------------------------------------

    def _sample(
        self,
        candidates: List[Employee],
        history: Optional[Sequence[Any]],
        count: int,
        rng: DeterministicRNG,
    ) -> List[EmployeeSnapshot]:
        weights = compute_weights(candidates, history)
        picks = draw_without_replacement(
            candidates, weights, min(count, len(candidates)), rng,
        )
        return [p.snapshot() for p in picks]

    def perform_draw(
        self,
        history: Optional[Sequence[Any]] = None,
        selected_sub_departments: Optional[Iterable[str]] = None,
        excluded_employees: Iterable[PersonRef] = (),
        rng: Optional[DeterministicRNG] = None,
    ) -> List[DepartmentResult]:
        """
        Draw every department's quota from its pool.

        Per department:
          1. drop excluded names
          2. drop department heads (deputies stay)
          3. weight by history, sample without replacement
        Departments with no drawable candidate are omitted silently.
        Raises EmptyDrawPoolError when no department yields anyone.
        """
        pool = self.get_draw_pool(selected_sub_departments)
        if not pool:
            raise EmptyDrawPoolError("no department has any candidate")

        rng = rng or DeterministicRNG()
        excluded = _names(excluded_employees)
        results: List[DepartmentResult] = []

        for dept, entry in pool.items():
            available = [e for e in entry.employees if e.name not in excluded]
            drawable = _unique_by_name(filter_drawable(available))
            if not drawable:
                continue

            selected = self._sample(drawable, history, entry.draw_count, rng)
            if selected:
                results.append(DepartmentResult(
                    department=dept,
                    employees=selected,
                    total_available=len(available),
                    target_count=entry.draw_count,
                ))

        if not results:
            raise EmptyDrawPoolError("no participants left after exclusions")

        validate_results(results, pool)
        return results

    def supplement_draw(
        self,
        current_results: Sequence[DepartmentResult],
        removed_employees: Sequence[EmployeeSnapshot],
        history: Optional[Sequence[Any]] = None,
        selected_sub_departments: Optional[Iterable[str]] = None,
        rng: Optional[DeterministicRNG] = None,
    ) -> List[SupplementResult]:
        """
        Refill departments that lost members.

        shortfall = pool quota − current count, only for departments with
        at least one removal. Everyone already kept or removed is
        excluded, and each new pick extends the exclusion set.
        """
        if not removed_employees:
            return []

        pool = self.get_draw_pool(selected_sub_departments)
        rng = rng or DeterministicRNG()

        counts = {r.department: len(r.employees) for r in current_results}
        excluded = _names(e for r in current_results for e in r.employees)
        excluded |= _names(removed_employees)

        touched: List[str] = []
        for emp in removed_employees:
            if emp.department not in touched:
                touched.append(emp.department)

        supplements: List[SupplementResult] = []
        for dept in touched:
            entry = pool.get(dept)
            if entry is None:
                continue
            need = entry.draw_count - counts.get(dept, 0)
            if need <= 0:
                continue

            available = [e for e in entry.employees if e.name not in excluded]
            drawable = _unique_by_name(filter_drawable(available))
            if not drawable:
                continue

            selected = self._sample(drawable, history, need, rng)
            excluded.update(e.name for e in selected)
            if selected:
                supplements.append(SupplementResult(
                    department=dept,
                    employees=selected,
                    supplement_count=need,
                    actual_count=len(selected),
                ))

        return supplements


# ---------------------------------------------------------------------------
# Result mutation helpers
# ---------------------------------------------------------------------------

def merge_supplement_results(
    current_results: List[DepartmentResult],
    supplements: Sequence[SupplementResult],
) -> List[DepartmentResult]:
    """Append into existing department entries or create new ones. In place."""
    by_dept = {r.department: r for r in current_results}
    for sup in supplements:
        existing = by_dept.get(sup.department)
        if existing is not None:
            existing.employees.extend(sup.employees)
        else:
            created = DepartmentResult(
                department=sup.department,
                employees=list(sup.employees),
                total_available=len(sup.employees),
                target_count=len(sup.employees),
            )
            current_results.append(created)
            by_dept[sup.department] = created
    return current_results


def remove_employee(
    results: Sequence[DepartmentResult], name: str, department: str,
) -> Optional[EmployeeSnapshot]:
    """Remove (name, department) from the results. Returns the removed snapshot."""
    for result in results:
        if result.department != department:
            continue
        for i, emp in enumerate(result.employees):
            if emp.name == name:
                return result.employees.pop(i)
    return None
