"""
Survey Draw Kernel
Weighted, quota-driven selection of survey participants from a roster.
Pure in-memory engine: no file, network or storage access.
"""

from .domain_types import (
    Employee, EmployeeSnapshot, DepartmentStats, SubDepartmentStats,
    DrawPoolEntry, DepartmentResult, SupplementResult, StatsSummary,
    HistoryRecord, employee_from_row, rows_to_employees,
)
from .errors import (
    DrawError,
    RosterValidationError,
    NoEligibleEmployeesError,
    EmptyDrawPoolError,
    NotLoadedError,
)
from .engine import DrawEngine, merge_supplement_results, remove_employee
from .grouping import calculate_draw_count, compute_department_stats
from .history import (
    build_history_record,
    current_quarter,
    period_label,
    quarter_name,
    remove_employee_from_record,
    same_selection,
)
from .invariants import InvariantViolationError, validate_results
from .pool import build_draw_pool, effective_selection
from .rng import DeterministicRNG
from .roster import filter_drawable, filter_eligible, is_department_head
from .sampler import draw_without_replacement, weighted_index
from .weighting import calculate_weight, compute_weights

__all__ = [
    "Employee",
    "EmployeeSnapshot",
    "DepartmentStats",
    "SubDepartmentStats",
    "DrawPoolEntry",
    "DepartmentResult",
    "SupplementResult",
    "StatsSummary",
    "HistoryRecord",
    "employee_from_row",
    "rows_to_employees",
    "DrawError",
    "RosterValidationError",
    "NoEligibleEmployeesError",
    "EmptyDrawPoolError",
    "NotLoadedError",
    "DrawEngine",
    "merge_supplement_results",
    "remove_employee",
    "calculate_draw_count",
    "compute_department_stats",
    "build_history_record",
    "current_quarter",
    "period_label",
    "quarter_name",
    "remove_employee_from_record",
    "same_selection",
    "InvariantViolationError",
    "validate_results",
    "build_draw_pool",
    "effective_selection",
    "DeterministicRNG",
    "filter_drawable",
    "filter_eligible",
    "is_department_head",
    "draw_without_replacement",
    "weighted_index",
    "calculate_weight",
    "compute_weights",
]
