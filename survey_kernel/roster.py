"""
Survey Draw Kernel — Roster Filter

Two pure filters:
  eligible  — counts toward quotas
  drawable  — eligible minus department heads (deputies stay drawable)

The drawable set is always a subset of the eligible set.
"""

from __future__ import annotations

from typing import Iterable, List

from .constants import (
    ACTIVE_STATUS,
    DEPARTMENT_HEAD_MARKER,
    DEPUTY_HEAD_MARKER,
    EXCLUDED_DEPARTMENTS,
    EXCLUDED_POSITIONS,
)
from .domain_types import Employee


def is_eligible(employee: Employee) -> bool:
    if employee.status != ACTIVE_STATUS:
        return False
    if employee.position in EXCLUDED_POSITIONS:
        return False
    if employee.department in EXCLUDED_DEPARTMENTS:
        return False
    return bool(employee.name and employee.department and employee.sub_department)


def is_department_head(position: str) -> bool:
    """Substring match: "部长" marks a head unless it is part of "副部长"."""
    position = position or ""
    return DEPARTMENT_HEAD_MARKER in position and DEPUTY_HEAD_MARKER not in position


def filter_eligible(employees: Iterable[Employee]) -> List[Employee]:
    return [e for e in employees if is_eligible(e)]


def filter_drawable(employees: Iterable[Employee]) -> List[Employee]:
    """Applied at draw time only, never to quota computation."""
    return [e for e in employees if not is_department_head(e.position)]
