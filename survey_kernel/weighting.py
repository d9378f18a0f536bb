"""
Survey Draw Kernel — History Weighting

Cool-down rule: an employee selected in BOTH of the two most recent
history records gets weight DOWNWEIGHT; everyone else gets
DEFAULT_WEIGHT. Any gap resets to full weight.

History records are the persisted JSON dicts (or HistoryRecord
instances). Malformed records are skipped, never fatal.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .constants import DEFAULT_WEIGHT, DOWNWEIGHT, RECENT_RECORD_WINDOW
from .domain_types import Employee, HistoryRecord

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string. Naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _selected_names(record: Any) -> Optional[Set[str]]:
    if isinstance(record, HistoryRecord):
        return {e.name for e in record.selected_employees if e.name}
    if not isinstance(record, Mapping):
        return None
    selected = record.get("selectedEmployees")
    if not isinstance(selected, list):
        return None
    return {
        e["name"] for e in selected
        if isinstance(e, Mapping) and isinstance(e.get("name"), str)
    }


def _record_date(record: Any) -> Optional[datetime]:
    if isinstance(record, HistoryRecord):
        return parse_timestamp(record.date)
    if isinstance(record, Mapping):
        return parse_timestamp(record.get("date"))
    return None


def _valid_records(history: Optional[Sequence[Any]]) -> List[Tuple[datetime, Set[str]]]:
    """Return (date, names) for every well-formed record, newest first."""
    if not history or not isinstance(history, (list, tuple)):
        return []
    valid: List[Tuple[datetime, Set[str]]] = []
    skipped = 0
    for record in history:
        names = _selected_names(record)
        date = _record_date(record)
        if names is None or date is None:
            skipped += 1
            continue
        valid.append((date, names))
    if skipped:
        logger.debug("Skipped %d malformed history record(s)", skipped)
    valid.sort(key=lambda item: item[0], reverse=True)
    return valid


def _weight_from(name: str, valid: List[Tuple[datetime, Set[str]]]) -> float:
    appearances = [date for date, names in valid if name in names]
    if not appearances:
        return DEFAULT_WEIGHT
    recent = valid[:RECENT_RECORD_WINDOW]
    if len(recent) < RECENT_RECORD_WINDOW:
        return DEFAULT_WEIGHT
    if all(name in names for _, names in recent):
        return DOWNWEIGHT
    return DEFAULT_WEIGHT


def calculate_weight(employee_name: str, history: Optional[Sequence[Any]]) -> float:
    """Weight for one name against the full history (default 1.0)."""
    return _weight_from(employee_name, _valid_records(history))


def compute_weights(
    employees: Sequence[Employee], history: Optional[Sequence[Any]],
) -> List[float]:
    """Weights aligned with `employees`; history is parsed once."""
    valid = _valid_records(history)
    cache: Dict[str, float] = {}
    weights: List[float] = []
    for emp in employees:
        if emp.name not in cache:
            cache[emp.name] = _weight_from(emp.name, valid)
        weights.append(cache[emp.name])
    return weights
