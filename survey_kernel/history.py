"""
Survey Draw Kernel — History Records

Construction and editing of persisted draw records. Records are plain
JSON dicts once they reach the history store; HistoryRecord is the
typed form used while building one.
"""

from __future__ import annotations

import copy
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .constants import PERIOD_LABEL_FORMAT, QUARTER_NAMES
from .domain_types import DepartmentResult, EmployeeSnapshot, HistoryRecord


def quarter_name(quarter: int) -> str:
    if not 1 <= quarter <= len(QUARTER_NAMES):
        raise ValueError(f"Quarter must be 1..{len(QUARTER_NAMES)}, got {quarter}")
    return QUARTER_NAMES[quarter - 1]


def current_quarter(when: Optional[datetime] = None) -> int:
    when = when or datetime.now(timezone.utc)
    return (when.month - 1) // 3 + 1


def period_label(year: int, quarter: str) -> str:
    return PERIOD_LABEL_FORMAT.format(year=year, quarter=quarter)


def generate_record_id(when: Optional[datetime] = None) -> str:
    when = when or datetime.now(timezone.utc)
    millis = int(when.timestamp() * 1000)
    return f"id_{millis}_{uuid.uuid4().hex[:9]}"


def build_history_record(
    results: Sequence[DepartmentResult],
    roster_total: int,
    eligible_count: int,
    year: int,
    quarter: str,
    timestamp: Optional[datetime] = None,
    record_id: Optional[str] = None,
) -> HistoryRecord:
    """Snapshot the current results into a new record (not yet persisted)."""
    timestamp = timestamp or datetime.now(timezone.utc)
    selected: List[EmployeeSnapshot] = []
    breakdown: Dict[str, int] = {}
    for dept in results:
        breakdown[dept.department] = len(dept.employees)
        selected.extend(dept.employees)

    total = len(selected)
    return HistoryRecord(
        id=record_id or generate_record_id(timestamp),
        date=timestamp.isoformat(),
        selected_employees=selected,
        department_breakdown=breakdown,
        total_selected=total,
        department_count=len(results),
        roster_total_count=roster_total,
        eligible_count=eligible_count,
        final_selected_count=total,
        period_year=year,
        period_quarter=quarter,
        period_label=period_label(year, quarter),
    )


def remove_employee_from_record(
    record: Mapping[str, Any], name: str, department: str,
) -> dict:
    """
    Return a copy of `record` without (name, department), with the
    totals and department breakdown recomputed.
    """
    updated = copy.deepcopy(dict(record))
    selected = [
        e for e in updated.get("selectedEmployees") or []
        if isinstance(e, Mapping)
        and not (e.get("name") == name and e.get("department") == department)
    ]
    breakdown = Counter(e.get("department", "") for e in selected)
    updated["selectedEmployees"] = selected
    updated["totalSelected"] = len(selected)
    updated["finalSelectedCount"] = len(selected)
    updated["departmentBreakdown"] = dict(breakdown)
    updated["departmentCount"] = len(breakdown)
    return updated


def selected_names(record: Mapping[str, Any]) -> List[str]:
    return [
        e["name"] for e in record.get("selectedEmployees") or []
        if isinstance(e, Mapping) and e.get("name")
    ]


def same_selection(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    """True when both records select the same non-empty multiset of names."""
    names_a = sorted(selected_names(a))
    return bool(names_a) and names_a == sorted(selected_names(b))
