from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from weighted_hierarchy.core.config.engine_config import DEFAULT
from weighted_hierarchy.core.errors import CapacityExceeded, CapacityViolation, InvalidWeight
from weighted_hierarchy.core.model import ROOT_WEIGHT


# Every level of the hierarchy is its own 100% budget, so all checks here are
# local to one parent and its direct children.


@dataclass(frozen=True)
class WeightTotalCheck:
    is_valid: bool
    total: float
    difference: float
    message: str


def check_weight(value: Any, *, node_id: Optional[str] = None) -> float:
    """Return value as float or raise InvalidWeight."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidWeight(message=f"weight must be a number, got {value!r}", node_id=node_id)
    w = float(value)
    if math.isnan(w) or w <= 0:
        raise InvalidWeight(message=f"weight must be greater than 0, got {value}", node_id=node_id)
    if w > ROOT_WEIGHT:
        raise InvalidWeight(message=f"weight must not exceed {ROOT_WEIGHT:g}, got {value}", node_id=node_id)
    return w


def remaining_capacity(
    weights: Iterable[float],
    *,
    node_id: Optional[str] = None,
    tolerance: float = DEFAULT.weight_tolerance,
) -> tuple[float, Optional[CapacityViolation]]:
    """Return (remaining, violation).

    remaining is 100 - sum(weights) floored at 0. An over-allocated level is
    reported as a CapacityViolation diagnostic instead of being raised, since a
    tree loaded from outside may be transiently inconsistent.
    """
    allocated = math.fsum(weights)
    remaining = ROOT_WEIGHT - allocated
    if remaining < -tolerance:
        return 0.0, CapacityViolation(
            message=f"child weights sum to {allocated:g}, exceeding {ROOT_WEIGHT:g}",
            node_id=node_id,
            allocated=allocated,
        )
    return max(0.0, _snap(remaining, tolerance)), None


def validate_insertion(
    existing_weights: Iterable[float],
    new_weight: Any,
    *,
    node_id: Optional[str] = None,
    tolerance: float = DEFAULT.weight_tolerance,
) -> float:
    """Return the remaining capacity before insertion, or raise.

    InvalidWeight is checked first so a bad value never reaches the capacity check.
    """
    w = check_weight(new_weight, node_id=node_id)
    remaining, _ = remaining_capacity(existing_weights, node_id=node_id, tolerance=tolerance)
    if w > remaining + tolerance:
        raise CapacityExceeded(
            message=f"weight {w:g} exceeds remaining capacity {remaining:g}",
            node_id=node_id,
            remaining=remaining,
        )
    return remaining


def validate_weights_total(
    weights: Iterable[float], *, tolerance: float = DEFAULT.weight_tolerance
) -> WeightTotalCheck:
    """Check that a fully decomposed level sums to exactly 100."""
    total = math.fsum(weights)
    difference = _snap(total - ROOT_WEIGHT, tolerance)
    if difference == 0:
        return WeightTotalCheck(is_valid=True, total=ROOT_WEIGHT, difference=0.0, message="Valid")
    return WeightTotalCheck(
        is_valid=False,
        total=total,
        difference=difference,
        message=f"Total is {total:g}%, must be {ROOT_WEIGHT:g}%",
    )


def _snap(value: float, tolerance: float) -> float:
    return 0.0 if abs(value) <= tolerance else value
