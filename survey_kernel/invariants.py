"""
Survey Draw Kernel — Invariant Checks

Hard-fail validation of draw results. Every check raises
InvariantViolationError on failure.
"""

from __future__ import annotations

from typing import Dict, List, Sequence, Set, Tuple

from .domain_types import DepartmentResult, DrawPoolEntry


class InvariantViolationError(Exception):
    """Raised when a draw result breaks a structural guarantee."""

    def __init__(self, rule: str, detail: str) -> None:
        self.rule = rule
        self.detail = detail
        super().__init__(f"[INVARIANT:{rule}] {detail}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_results(
    results: Sequence[DepartmentResult],
    pool: Dict[str, DrawPoolEntry],
) -> None:
    """Run all result checks. Raises on the first failure."""
    _check_no_duplicates(results)
    _check_within_quota(results, pool)


# ---------------------------------------------------------------------------
# Individual checks (private)
# ---------------------------------------------------------------------------

def _check_no_duplicates(results: Sequence[DepartmentResult]) -> None:
    """No (name, department) pair appears twice in one execution."""
    seen: Set[Tuple[str, str]] = set()
    for result in results:
        for emp in result.employees:
            key = (emp.name, emp.department)
            if key in seen:
                raise InvariantViolationError(
                    "duplicate_selection",
                    f"{emp.name!r} selected twice in department {emp.department!r}",
                )
            seen.add(key)


def _check_within_quota(
    results: Sequence[DepartmentResult],
    pool: Dict[str, DrawPoolEntry],
) -> None:
    """A department never receives more than its pool's draw count."""
    for result in results:
        entry = pool.get(result.department)
        limit = entry.draw_count if entry is not None else 0
        if len(result.employees) > limit:
            raise InvariantViolationError(
                "quota_exceeded",
                f"Department {result.department!r} has "
                f"{len(result.employees)} selected, quota {limit}",
            )
