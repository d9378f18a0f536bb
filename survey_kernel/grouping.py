"""
Survey Draw Kernel — Grouping & Quota Calculator

Partitions eligible employees by department (and, inside the special
department, by sub-department) and assigns each department its quota
from the fixed step table.

Stats are a pure function of the eligible list; recompute them whenever
the roster changes.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from .constants import (
    DEFAULT_SUB_DEPARTMENTS,
    OPTIONAL_SUB_DEPARTMENTS,
    QUOTA_CEILING,
    QUOTA_STEPS,
    SPECIAL_DEPARTMENT,
)
from .domain_types import DepartmentStats, Employee, StatsSummary, SubDepartmentStats


def calculate_draw_count(department_size: int) -> int:
    """Step function: ≤10→1, ≤20→2, ≤50→3, ≤100→4, else 8."""
    for upper, count in QUOTA_STEPS:
        if department_size <= upper:
            return count
    return QUOTA_CEILING


def is_special_department(department: str) -> bool:
    return department == SPECIAL_DEPARTMENT


def group_by_department(employees: Iterable[Employee]) -> Dict[str, List[Employee]]:
    """Insertion-ordered: departments appear in first-seen roster order."""
    groups: Dict[str, List[Employee]] = {}
    for emp in employees:
        groups.setdefault(emp.department, []).append(emp)
    return groups


def group_by_sub_department(employees: Iterable[Employee]) -> Dict[str, List[Employee]]:
    groups: Dict[str, List[Employee]] = {}
    for emp in employees:
        groups.setdefault(emp.sub_department, []).append(emp)
    return groups


def compute_sub_department_stats(
    employees: List[Employee], department: str,
) -> Dict[str, SubDepartmentStats]:
    special = is_special_department(department)
    stats: Dict[str, SubDepartmentStats] = {}
    for sub, members in group_by_sub_department(employees).items():
        stats[sub] = SubDepartmentStats(
            name=sub,
            count=len(members),
            employees=members,
            is_default=special and sub in DEFAULT_SUB_DEPARTMENTS,
            is_optional=special and sub in OPTIONAL_SUB_DEPARTMENTS,
        )
    return stats


def compute_department_stats(eligible: List[Employee]) -> Dict[str, DepartmentStats]:
    stats: Dict[str, DepartmentStats] = {}
    for dept, members in group_by_department(eligible).items():
        stats[dept] = DepartmentStats(
            name=dept,
            total_count=len(members),
            draw_count=calculate_draw_count(len(members)),
            employees=members,
            is_special=is_special_department(dept),
            sub_departments=compute_sub_department_stats(members, dept),
        )
    return stats


def summarize(
    roster_total: int,
    eligible: List[Employee],
    stats: Dict[str, DepartmentStats],
) -> StatsSummary:
    return StatsSummary(
        roster_total=roster_total,
        eligible_total=len(eligible),
        department_count=len(stats),
        total_draw_count=sum(d.draw_count for d in stats.values()),
        departments=stats,
    )
