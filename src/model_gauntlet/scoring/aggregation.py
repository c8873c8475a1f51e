"""
Score aggregation primitives

Deterministic aggregation of whatever scores were returned: means,
threshold classification and largest-remainder quota allocation.
"""

from __future__ import annotations

import math
from typing import Iterable


def mean(values: Iterable[float | None]) -> float:
    """Mean of the non-None values (0.0 when there are none)"""
    present = [v for v in values if v is not None]
    if not present:
        return 0.0
    return sum(present) / len(present)


def classify_threshold(value: float, thresholds: list[tuple[str, float]], default: str) -> str:
    """
    Return the label of the first threshold strictly exceeded

    Args:
        value: Value to classify
        thresholds: (label, lower bound) pairs, highest bound first
        default: Label when no bound is exceeded
    """
    for label, bound in thresholds:
        if value > bound:
            return label
    return default


def compute_quotas(weights: dict[str, float], total: int) -> dict[str, int]:
    """
    Split `total` across categories proportionally to their weights

    Uses largest-remainder distribution so the quotas always sum to `total`.
    Remainder ties go to the category name that sorts first (case-insensitive).

    Raises:
        ValueError: Negative total or weights, or no positive weight
    """
    if total < 0:
        raise ValueError("total must be non-negative")
    if any(w < 0 for w in weights.values()):
        raise ValueError("weights must be non-negative")
    weight_sum = sum(weights.values())
    if not weights or weight_sum <= 0:
        raise ValueError("at least one positive weight is required")

    exact = {name: total * w / weight_sum for name, w in weights.items()}
    quotas = {name: math.floor(v) for name, v in exact.items()}
    remaining = total - sum(quotas.values())

    by_remainder = sorted(
        exact,
        key=lambda name: (-(exact[name] - quotas[name]), name.lower()),
    )
    for name in by_remainder[:remaining]:
        quotas[name] += 1
    return quotas
