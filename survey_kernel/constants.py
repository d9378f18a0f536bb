"""
Survey Draw Kernel — Roster Constants (Default Values)

All magic values live here as module-level defaults.
Roster values are kept in the literal form used by the
company roster spreadsheet.
"""

from typing import Tuple

# --- Eligibility ---
ACTIVE_STATUS: str = "在岗"

EXCLUDED_POSITIONS: Tuple[str, ...] = ("实习生", "长假人员")

EXCLUDED_DEPARTMENTS: Tuple[str, ...] = ("厂部", "总工室")

# --- Drawable filter (substring match on position) ---
DEPARTMENT_HEAD_MARKER: str = "部长"
DEPUTY_HEAD_MARKER: str = "副部长"

# --- Special department ---
SPECIAL_DEPARTMENT: str = "运行部"

DEFAULT_SUB_DEPARTMENTS: Tuple[str, ...] = ("运行部办公室", "运管环化分部")

OPTIONAL_SUB_DEPARTMENTS: Tuple[str, ...] = (
    "运行A值", "运行B值", "运行C值", "运行D值", "运行F值",
)

# --- Quota table: (max department size, draw count) ---
QUOTA_STEPS: Tuple[Tuple[int, int], ...] = (
    (10, 1),
    (20, 2),
    (50, 3),
    (100, 4),
)
QUOTA_CEILING: int = 8

# --- History weighting ---
DEFAULT_WEIGHT: float = 1.0
DOWNWEIGHT: float = 0.01
RECENT_RECORD_WINDOW: int = 2

# --- History store ---
HISTORY_CAP: int = 200

# --- Period labels ---
QUARTER_NAMES: Tuple[str, ...] = ("第一季度", "第二季度", "第三季度", "第四季度")
PERIOD_LABEL_FORMAT: str = "{year}年{quarter}满意度调查人员名单"

# --- Roster ingestion ---
# Rows with blank required values beyond this count reject the roster.
MAX_INCOMPLETE_ROWS: int = 5
