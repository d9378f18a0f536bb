"""
Observability — In-process metrics collection.

No external dependencies. Uses engine diagnostics + session timing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import DrawSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionMetrics:
    """Snapshot of observable session metrics."""

    phase: str
    last_draw_latency_ms: float
    roster_total: int
    eligible_count: int
    department_count: int
    selected_count: int
    pending_shortfall: int
    history_size: int
    primary_backend_available: bool
    warnings: list

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "lastDrawLatencyMs": self.last_draw_latency_ms,
            "rosterTotal": self.roster_total,
            "eligibleCount": self.eligible_count,
            "departmentCount": self.department_count,
            "selectedCount": self.selected_count,
            "pendingShortfall": self.pending_shortfall,
            "historySize": self.history_size,
            "primaryBackendAvailable": self.primary_backend_available,
            "warnings": list(self.warnings),
        }


def collect_metrics(session: "DrawSession") -> SessionMetrics:
    """Collect metrics from a live session. Never raises on a missing roster."""
    engine = session.engine
    warnings: list = []
    department_count = 0
    if engine.is_loaded:
        diagnostics = session.get_diagnostics()
        department_count = diagnostics["department_count"]
        warnings.extend(diagnostics["warnings"])

    try:
        history_size = len(session.get_history())
    except Exception as exc:
        logger.warning("History unavailable while collecting metrics: %s", exc)
        history_size = 0
        warnings.append("history unavailable")

    store = session.history_store
    if not store.primary_available:
        warnings.append("primary history backend unavailable; using local cache")

    return SessionMetrics(
        phase=session.phase.value,
        last_draw_latency_ms=session.last_draw_ms,
        roster_total=engine.roster_total,
        eligible_count=len(engine.eligible),
        department_count=department_count,
        selected_count=sum(len(r.employees) for r in session.results),
        pending_shortfall=sum(session.shortfalls().values()) if engine.is_loaded else 0,
        history_size=history_size,
        primary_backend_available=store.primary_available,
        warnings=warnings,
    )
