"""
Survey Draw Kernel — Diagnostics

Compute a diagnostic snapshot of the loaded roster against the current
pool. Observational only.
"""

from __future__ import annotations

from typing import Dict, List

from .domain_types import DepartmentStats, DrawPoolEntry
from .roster import filter_drawable


def compute_diagnostics(
    stats: Dict[str, DepartmentStats],
    pool: Dict[str, DrawPoolEntry],
) -> dict:
    """
    Return a diagnostic dict summarising draw readiness.

    short_departments: department → (quota, drawable candidates) where
    department heads leave fewer drawable candidates than the quota.
    """
    short: Dict[str, List[int]] = {}
    for dept, entry in pool.items():
        drawable = len(filter_drawable(entry.employees))
        if drawable < entry.draw_count:
            short[dept] = [entry.draw_count, drawable]

    unclassified: List[str] = []
    for data in stats.values():
        if not data.is_special:
            continue
        for sub in data.sub_departments.values():
            if not sub.is_default and not sub.is_optional:
                unclassified.append(sub.name)

    omitted = sorted(set(stats) - set(pool))

    warnings: List[str] = []
    if short:
        warnings.append(
            f"{len(short)} department(s) cannot fill their quota: "
            f"{', '.join(sorted(short))}"
        )
    if unclassified:
        warnings.append(
            f"{len(unclassified)} special sub-department(s) never drawn: "
            f"{', '.join(sorted(unclassified))}"
        )
    if omitted:
        warnings.append(
            f"{len(omitted)} department(s) have no candidates: {', '.join(omitted)}"
        )

    return {
        "department_count": len(stats),
        "pool_department_count": len(pool),
        "candidate_count": sum(e.total_count for e in pool.values()),
        "total_draw_count": sum(e.draw_count for e in pool.values()),
        "short_departments": short,
        "unclassified_sub_departments": sorted(unclassified),
        "omitted_departments": omitted,
        "warnings": warnings,
    }
