"""
Survey Draw Kernel — Weighted Sampler

Weighted sampling without replacement by repeated cumulative-weight
selection. Each step removes the chosen slot by swap-remove (O(1)),
so the order of the remaining pool is deterministic for a given seed.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, TypeVar

from .rng import DeterministicRNG

T = TypeVar("T")


def _check_weights(weights: Sequence[float]) -> None:
    for w in weights:
        if math.isnan(w) or w < 0:
            raise ValueError(f"Invalid sampling weight {w!r}: must be >= 0")


def weighted_index(weights: Sequence[float], rng: DeterministicRNG) -> int:
    """
    Classic cumulative-weight pick over a non-empty weight list.

    Walk in order subtracting each weight from a uniform draw in
    [0, total); the first slot where the remainder reaches <= 0 wins.
    Zero-weight slots are never selected while any weight is positive.
    Floating-point drift past the end selects the last positive slot. An
    all-zero list selects the first slot.
    """
    if not weights:
        raise ValueError("weighted_index: empty weight list")
    total = math.fsum(weights)
    if total <= 0:
        return 0
    remainder = rng.uniform_below(total)
    last_positive = 0
    for i, w in enumerate(weights):
        if w == 0:
            continue
        last_positive = i
        remainder -= w
        if remainder <= 0:
            return i
    return last_positive


def draw_without_replacement(
    candidates: Sequence[T],
    weights: Sequence[float],
    count: int,
    rng: Optional[DeterministicRNG] = None,
) -> List[T]:
    """
    Draw up to `count` distinct candidates, in selection order.

    Stops early when the pool is exhausted; count <= 0 draws nothing.
    """
    if len(candidates) != len(weights):
        raise ValueError(
            f"candidates ({len(candidates)}) and weights ({len(weights)}) "
            f"must have the same length"
        )
    _check_weights(weights)
    if rng is None:
        rng = DeterministicRNG()

    pool = list(candidates)
    pool_weights = list(weights)
    selected: List[T] = []

    for _ in range(max(count, 0)):
        if not pool:
            break
        idx = weighted_index(pool_weights, rng)
        selected.append(pool[idx])
        # swap-remove
        last = len(pool) - 1
        pool[idx] = pool[last]
        pool_weights[idx] = pool_weights[last]
        pool.pop()
        pool_weights.pop()

    return selected
