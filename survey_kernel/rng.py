"""
Deterministic RNG — Seeded random wrapper.

All randomness in a draw passes through a single DeterministicRNG
instance. Identical (seed) → identical call sequence → identical draws.
"""

from __future__ import annotations

import random
from typing import Optional


class DeterministicRNG:
    """Local RNG. No global random state touched. seed=None seeds from the OS."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._seed = seed
        self._rng = random.Random(seed)

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def uniform_below(self, upper: float) -> float:
        """Return a float in [0, upper)."""
        return self._rng.random() * upper
