"""
Survey Draw Kernel — Draw Pool Builder

Combines department stats with a caller-owned sub-department selection
into a per-department candidate pool and target count.

The pool is a view over (stats, selection). It is rebuilt on every
call and never cached, since the selection can change between calls.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from .constants import DEFAULT_SUB_DEPARTMENTS
from .domain_types import DepartmentStats, DrawPoolEntry, Employee
from .grouping import calculate_draw_count


def effective_selection(selected: Optional[Iterable[str]] = None) -> Set[str]:
    """Defaults are always included; no selection at all means defaults only."""
    result: Set[str] = set(DEFAULT_SUB_DEPARTMENTS)
    if selected:
        result.update(selected)
    return result


def build_draw_pool(
    stats: Dict[str, DepartmentStats],
    selected_sub_departments: Optional[Iterable[str]] = None,
) -> Dict[str, DrawPoolEntry]:
    """
    Return department → DrawPoolEntry.

    Special department: candidates are the union of selected
    sub-departments, but the quota basis stays the whole department size.
    Other departments: all eligible members, quota basis = pool size.
    Departments with an empty candidate list are omitted.
    """
    selection = effective_selection(selected_sub_departments)
    pool: Dict[str, DrawPoolEntry] = {}

    for dept, data in stats.items():
        if data.is_special:
            candidates: List[Employee] = []
            for sub, sub_stats in data.sub_departments.items():
                if sub in selection:
                    candidates.extend(sub_stats.employees)
            base_count = data.total_count
        else:
            candidates = list(data.employees)
            base_count = len(candidates)

        if not candidates:
            continue

        pool[dept] = DrawPoolEntry(
            department=dept,
            employees=candidates,
            draw_count=min(calculate_draw_count(base_count), len(candidates)),
            total_count=len(candidates),
            base_total_count=base_count,
        )

    return pool
