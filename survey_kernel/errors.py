"""
Survey Draw Kernel — Exception Hierarchy

Every error that aborts a whole operation carries a human-readable
message naming the condition. Per-department omissions are not errors.
"""

from __future__ import annotations

from typing import Sequence


class DrawError(Exception):
    """Base exception for all draw-engine failures."""


class RosterValidationError(DrawError):
    """Raised at the ingestion boundary when roster rows are unusable."""

    def __init__(self, detail: str, missing: Sequence[str] = ()) -> None:
        self.detail = detail
        self.missing = list(missing)
        super().__init__(f"[ROSTER] {detail}")


class NoEligibleEmployeesError(DrawError):
    """Raised when the roster yields zero eligible employees."""

    def __init__(self, roster_total: int) -> None:
        self.roster_total = roster_total
        super().__init__(
            f"No eligible employees: {roster_total} roster row(s) "
            f"were all filtered out"
        )


class EmptyDrawPoolError(DrawError):
    """Raised when no department has any drawable candidate left."""

    def __init__(self, detail: str = "no drawable participants") -> None:
        self.detail = detail
        super().__init__(f"Empty draw pool: {detail}")


class NotLoadedError(DrawError):
    """Raised when a draw operation runs before a roster was loaded."""

    def __init__(self) -> None:
        super().__init__("No roster loaded — call load_roster() first")
