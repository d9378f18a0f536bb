"""
Survey Draw Kernel — Core Domain Types

Pure data. No sampling logic.

────────────────────────────────────────────────
DOMAIN GLOSSARY
────────────────────────────────────────────────

Eligible employee:
    Active roster member passing the department/position exclusions.
    Counts toward the department quota.

Drawable employee:
    Eligible employee who is not a department head (deputies stay).

Quota (draw count):
    Target number of employees to select from one department.

Special department:
    The one department whose candidate pool is restricted to the
    default sub-departments plus the opted-in optional ones.

────────────────────────────────────────────────
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .constants import MAX_INCOMPLETE_ROWS
from .errors import RosterValidationError

logger = logging.getLogger(__name__)


# ── Roster column aliases ─────────────────────────────────────
# field name → accepted column keys (English first, roster header last)
_COLUMN_ALIASES: Dict[str, tuple] = {
    "name": ("name", "姓名"),
    "gender": ("gender", "性别"),
    "department": ("department", "部门"),
    "sub_department": ("subDepartment", "sub_department", "分部门"),
    "position": ("position", "岗位"),
    "status": ("status", "在职状态"),
}


# ── Employee records ──────────────────────────────────────────

@dataclass(frozen=True)
class EmployeeSnapshot:
    """Decoupled copy of a selected employee, as stored in results and history."""

    name: str
    gender: str = ""
    department: str = ""
    sub_department: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "gender": self.gender,
            "department": self.department,
            "subDepartment": self.sub_department,
        }


@dataclass(frozen=True)
class Employee:
    """One roster row, validated at the ingestion boundary."""

    name: str
    gender: str
    department: str
    sub_department: str
    position: str
    status: str

    def snapshot(self) -> EmployeeSnapshot:
        return EmployeeSnapshot(
            name=self.name,
            gender=self.gender,
            department=self.department,
            sub_department=self.sub_department,
        )


# ── Derived statistics ────────────────────────────────────────

@dataclass
class SubDepartmentStats:
    """Sub-department view, only meaningful inside the special department."""

    name: str
    count: int
    employees: List[Employee] = field(default_factory=list)
    is_default: bool = False
    is_optional: bool = False


@dataclass
class DepartmentStats:
    """Department name → population, quota and sub-department breakdown."""

    name: str
    total_count: int
    draw_count: int
    employees: List[Employee] = field(default_factory=list)
    is_special: bool = False
    sub_departments: Dict[str, SubDepartmentStats] = field(default_factory=dict)


@dataclass
class DrawPoolEntry:
    """
    Candidate pool for one department.

    base_total_count is the quota basis. For the special department it is
    the whole department size even when `employees` is an opted-in subset.
    """

    department: str
    employees: List[Employee]
    draw_count: int
    total_count: int
    base_total_count: int

    def to_dict(self) -> dict:
        return {
            "department": self.department,
            "employees": [e.snapshot().to_dict() for e in self.employees],
            "drawCount": self.draw_count,
            "totalCount": self.total_count,
            "baseTotalCount": self.base_total_count,
        }


@dataclass
class StatsSummary:
    roster_total: int
    eligible_total: int
    department_count: int
    total_draw_count: int
    departments: Dict[str, DepartmentStats] = field(default_factory=dict)

    @property
    def excluded_total(self) -> int:
        return self.roster_total - self.eligible_total

    def to_dict(self) -> dict:
        return {
            "rosterTotal": self.roster_total,
            "eligibleTotal": self.eligible_total,
            "excludedTotal": self.excluded_total,
            "departmentCount": self.department_count,
            "totalDrawCount": self.total_draw_count,
            "departments": {
                name: {
                    "totalCount": d.total_count,
                    "drawCount": d.draw_count,
                    "isSpecial": d.is_special,
                    "subDepartments": {
                        s.name: {
                            "count": s.count,
                            "isDefault": s.is_default,
                            "isOptional": s.is_optional,
                        }
                        for s in d.sub_departments.values()
                    },
                }
                for name, d in self.departments.items()
            },
        }


# ── Draw results ──────────────────────────────────────────────

@dataclass
class DepartmentResult:
    department: str
    employees: List[EmployeeSnapshot] = field(default_factory=list)
    total_available: int = 0
    target_count: int = 0

    def to_dict(self) -> dict:
        return {
            "department": self.department,
            "employees": [e.to_dict() for e in self.employees],
            "totalAvailable": self.total_available,
            "targetCount": self.target_count,
        }


@dataclass
class SupplementResult:
    department: str
    employees: List[EmployeeSnapshot] = field(default_factory=list)
    supplement_count: int = 0
    actual_count: int = 0

    def to_dict(self) -> dict:
        return {
            "department": self.department,
            "employees": [e.to_dict() for e in self.employees],
            "supplementCount": self.supplement_count,
            "actualCount": self.actual_count,
        }


# ── History ───────────────────────────────────────────────────

@dataclass
class HistoryRecord:
    """One persisted draw. JSON shape uses the stored camelCase keys."""

    id: str
    date: str
    selected_employees: List[EmployeeSnapshot] = field(default_factory=list)
    department_breakdown: Dict[str, int] = field(default_factory=dict)
    total_selected: int = 0
    department_count: int = 0
    roster_total_count: int = 0
    eligible_count: int = 0
    final_selected_count: int = 0
    period_year: Optional[int] = None
    period_quarter: str = ""
    period_label: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "totalSelected": self.total_selected,
            "departmentCount": self.department_count,
            "rosterTotalCount": self.roster_total_count,
            "eligibleCount": self.eligible_count,
            "finalSelectedCount": self.final_selected_count,
            "selectedEmployees": [e.to_dict() for e in self.selected_employees],
            "departmentBreakdown": dict(self.department_breakdown),
            "periodYear": self.period_year,
            "periodQuarter": self.period_quarter,
            "periodLabel": self.period_label,
        }


# ── Ingestion boundary ────────────────────────────────────────

def _lookup(row: Mapping[str, Any], field_name: str) -> Optional[str]:
    for key in _COLUMN_ALIASES[field_name]:
        if key in row:
            value = row[key]
            return "" if value is None else str(value).strip()
    return None


def employee_from_row(row: Mapping[str, Any]) -> Employee:
    """
    Build an Employee from a raw roster row.

    Accepts English keys or the roster spreadsheet headers. Raises
    RosterValidationError when a required column is absent. Blank values
    are kept; the eligibility filter drops them.
    """
    values: Dict[str, str] = {}
    missing: List[str] = []
    for field_name in _COLUMN_ALIASES:
        value = _lookup(row, field_name)
        if value is None:
            missing.append(field_name)
        else:
            values[field_name] = value
    if missing:
        raise RosterValidationError(
            f"missing required column(s): {', '.join(missing)}; "
            f"present: {', '.join(str(k) for k in row.keys())}",
            missing=missing,
        )
    return Employee(**values)


def rows_to_employees(rows: Iterable[Mapping[str, Any]]) -> List[Employee]:
    """
    Validate a whole roster.

    More than MAX_INCOMPLETE_ROWS rows with blank required values reject
    the roster; fewer are logged and passed through.
    """
    employees: List[Employee] = []
    incomplete: List[str] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise RosterValidationError(f"row {index + 1} is not a mapping")
        employee = employee_from_row(row)
        blank = [
            name for name in _COLUMN_ALIASES
            if not getattr(employee, name)
        ]
        if blank:
            incomplete.append(f"row {index + 1} missing {', '.join(blank)}")
        employees.append(employee)

    if not employees:
        raise RosterValidationError("roster is empty")
    if len(incomplete) > MAX_INCOMPLETE_ROWS:
        raise RosterValidationError(
            f"{len(incomplete)} incomplete row(s) — check roster data integrity"
        )
    if incomplete:
        logger.warning("Incomplete roster rows: %s", "; ".join(incomplete))
    return employees
