"""
interest_rate.py - Utilization-sensitive kink interest rate model

All functions are pure: the rate is a function of aggregate totals and an
InterestRateConfig, nothing else.

Key Formulas:
    utilization = min(10000, total_borrows * 10000 / total_deposits)

    borrow_rate (utilization <= kink):
        base + utilization * multiplier / kink
    borrow_rate (utilization > kink):
        base + multiplier + (utilization - kink) * jump_multiplier / (10000 - kink)

    borrow_rate = clamp(borrow_rate + emergency_adjustment, floor, ceiling)
    supply_rate = max(floor, borrow_rate - spread)

borrow_rate_curve() evaluates the same curve over a numpy array of
utilizations, for inspecting or plotting a configuration.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from .core import (
    BPS_SCALE,
    InvalidParameter,
    checked_add, checked_sub, mul_div,
)
from .risk_config import check_change_limit


# Defaults (basis points)
DEFAULT_BASE_RATE_BPS = 100
DEFAULT_KINK_UTILIZATION_BPS = 8_000
DEFAULT_MULTIPLIER_BPS = 2_000
DEFAULT_JUMP_MULTIPLIER_BPS = 10_000
DEFAULT_RATE_FLOOR_BPS = 50
DEFAULT_RATE_CEILING_BPS = 10_000
DEFAULT_SPREAD_BPS = 200

MAX_EMERGENCY_ADJUSTMENT_BPS = 10_000


@dataclass(frozen=True, slots=True)
class InterestRateConfig:
    """
    Parameters of the kink rate curve (all in basis points).

    emergency_adjustment_bps is added to the curve before clamping and may be
    negative. It is the only parameter exempt from the 10% change rule.
    """
    base_rate_bps: int = DEFAULT_BASE_RATE_BPS
    kink_utilization_bps: int = DEFAULT_KINK_UTILIZATION_BPS
    multiplier_bps: int = DEFAULT_MULTIPLIER_BPS
    jump_multiplier_bps: int = DEFAULT_JUMP_MULTIPLIER_BPS
    rate_floor_bps: int = DEFAULT_RATE_FLOOR_BPS
    rate_ceiling_bps: int = DEFAULT_RATE_CEILING_BPS
    spread_bps: int = DEFAULT_SPREAD_BPS
    emergency_adjustment_bps: int = 0


_RATE_FIELDS = (
    "base_rate_bps",
    "kink_utilization_bps",
    "multiplier_bps",
    "jump_multiplier_bps",
    "rate_floor_bps",
    "rate_ceiling_bps",
    "spread_bps",
)


def validate_interest_rate_config(config: InterestRateConfig) -> None:
    """
    Check an InterestRateConfig against its bounds.

    Raises:
        InvalidParameter: if any bps field is outside [0, 10000], the kink is
            outside [0, 10000), floor > ceiling, or the emergency adjustment
            is outside [-10000, 10000]
    """
    for name in _RATE_FIELDS:
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidParameter(f"{name} must be an integer, got {value!r}")
        if value < 0 or value > BPS_SCALE:
            raise InvalidParameter(f"{name}={value} outside [0, {BPS_SCALE}]")
    if config.kink_utilization_bps >= BPS_SCALE:
        raise InvalidParameter(
            f"kink_utilization_bps={config.kink_utilization_bps} must be below {BPS_SCALE}"
        )
    if config.rate_floor_bps > config.rate_ceiling_bps:
        raise InvalidParameter(
            f"rate_floor_bps ({config.rate_floor_bps}) > rate_ceiling_bps ({config.rate_ceiling_bps})"
        )
    adjustment = config.emergency_adjustment_bps
    if abs(adjustment) > MAX_EMERGENCY_ADJUSTMENT_BPS:
        raise InvalidParameter(
            f"emergency_adjustment_bps={adjustment} outside ±{MAX_EMERGENCY_ADJUSTMENT_BPS}"
        )


# ============================================================================
# PURE RATE FUNCTIONS
# ============================================================================

def calculate_utilization(total_borrows: int, total_deposits: int) -> int:
    """
    Borrowed share of deposits in bps, capped at 10000.

    Returns 0 when nothing is deposited.
    """
    if total_deposits <= 0:
        return 0
    utilization = mul_div(total_borrows, BPS_SCALE, total_deposits)
    return min(utilization, BPS_SCALE)


def _curve_rate(utilization: int, config: InterestRateConfig) -> int:
    kink = config.kink_utilization_bps
    if utilization <= kink:
        if kink == 0:
            return config.base_rate_bps
        return checked_add(config.base_rate_bps, mul_div(utilization, config.multiplier_bps, kink))
    excess = checked_sub(utilization, kink)
    jump = mul_div(excess, config.jump_multiplier_bps, BPS_SCALE - kink)
    return checked_add(checked_add(config.base_rate_bps, config.multiplier_bps), jump)


def calculate_borrow_rate(utilization: int, config: InterestRateConfig) -> int:
    """
    Annual borrow rate in bps for a utilization in bps.

    Example:
        config = InterestRateConfig()
        calculate_borrow_rate(4000, config)   # 100 + 4000 * 2000 / 8000 = 1100
        calculate_borrow_rate(9000, config)   # 100 + 2000 + 1000 * 10000 / 2000 = 7100
    """
    rate = checked_add(_curve_rate(utilization, config), config.emergency_adjustment_bps)
    return max(config.rate_floor_bps, min(rate, config.rate_ceiling_bps))


def calculate_supply_rate(borrow_rate: int, config: InterestRateConfig) -> int:
    """Annual supply rate in bps: the borrow rate less the spread, floored."""
    return max(config.rate_floor_bps, checked_sub(borrow_rate, config.spread_bps))


def calculate_rates(total_borrows: int, total_deposits: int, config: InterestRateConfig):
    """
    Return (utilization, borrow_rate, supply_rate) for aggregate totals.
    """
    utilization = calculate_utilization(total_borrows, total_deposits)
    borrow_rate = calculate_borrow_rate(utilization, config)
    return utilization, borrow_rate, calculate_supply_rate(borrow_rate, config)


def borrow_rate_curve(config: InterestRateConfig, utilizations) -> np.ndarray:
    """
    Vectorized borrow rate over an array of utilizations (bps).

    Produces the same integers as calculate_borrow_rate() for every element.

    Args:
        config: Rate curve parameters
        utilizations: Scalar or array-like of utilizations in [0, 10000]

    Returns:
        np.ndarray of int64 rates in bps

    Example:
        curve = borrow_rate_curve(config, np.arange(0, 10001, 100))
    """
    u = np.asarray(utilizations, dtype=np.int64)
    if np.any(u < 0) or np.any(u > BPS_SCALE):
        raise ValueError("utilizations must be within [0, 10000]")
    kink = config.kink_utilization_bps
    base = np.int64(config.base_rate_bps)
    if kink == 0:
        below = np.full_like(u, base)
    else:
        below = base + (u * config.multiplier_bps) // kink
    excess = np.maximum(u - kink, 0)
    above = base + config.multiplier_bps + (excess * config.jump_multiplier_bps) // (BPS_SCALE - kink)
    rate = np.where(u <= kink, below, above) + config.emergency_adjustment_bps
    return np.clip(rate, config.rate_floor_bps, config.rate_ceiling_bps)


# ============================================================================
# ADMIN UPDATES
# ============================================================================

def update_interest_rate_config(
    current: InterestRateConfig,
    base_rate_bps: Optional[int] = None,
    kink_utilization_bps: Optional[int] = None,
    multiplier_bps: Optional[int] = None,
    jump_multiplier_bps: Optional[int] = None,
    rate_floor_bps: Optional[int] = None,
    rate_ceiling_bps: Optional[int] = None,
    spread_bps: Optional[int] = None,
) -> InterestRateConfig:
    """
    Return a new InterestRateConfig with the given fields changed.

    Raises:
        InvalidParameter: if the result is out of bounds
        ParameterChangeTooLarge: if any field moves by more than 10% of its
            prior value
    """
    changes = {
        "base_rate_bps": base_rate_bps,
        "kink_utilization_bps": kink_utilization_bps,
        "multiplier_bps": multiplier_bps,
        "jump_multiplier_bps": jump_multiplier_bps,
        "rate_floor_bps": rate_floor_bps,
        "rate_ceiling_bps": rate_ceiling_bps,
        "spread_bps": spread_bps,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    updated = replace(current, **changes)
    validate_interest_rate_config(updated)
    if updated.kink_utilization_bps <= 0:
        raise InvalidParameter("kink_utilization_bps must be positive")
    for name, value in changes.items():
        check_change_limit(name, getattr(current, name), value)
    return updated


def set_emergency_adjustment(current: InterestRateConfig, adjustment_bps: int) -> InterestRateConfig:
    """
    Return a new InterestRateConfig with the emergency adjustment replaced.

    Raises:
        InvalidParameter: if |adjustment_bps| > 10000
    """
    updated = replace(current, emergency_adjustment_bps=adjustment_bps)
    validate_interest_rate_config(updated)
    return updated
