"""
risk_config.py - Solvency parameters, pause switches and their guardrails

RiskConfig is pure data plus validators. The LendingLedger holds the current
config and replaces it through update_risk_config(), which enforces the
documented bounds and the 10% change rule.

Key Formulas:
    max_change = old_value * 10% (integer, so a field at 0 cannot move)
    max_liquidatable = total_debt * close_factor_bps / 10000
    incentive = liquidated_amount * liquidation_incentive_bps / 10000
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .core import (
    BPS_SCALE, Operation,
    InvalidParameter, ParameterChangeTooLarge, OperationPaused, EmergencyPaused,
    bps_of,
)


# Defaults (basis points)
DEFAULT_MIN_COLLATERAL_RATIO_BPS = 11_000
DEFAULT_LIQUIDATION_THRESHOLD_BPS = 10_500
DEFAULT_CLOSE_FACTOR_BPS = 5_000
DEFAULT_LIQUIDATION_INCENTIVE_BPS = 1_000

# Bounds (inclusive)
MIN_COLLATERAL_RATIO_BOUNDS = (10_000, 50_000)
LIQUIDATION_THRESHOLD_BOUNDS = (10_000, 50_000)
CLOSE_FACTOR_BOUNDS = (0, BPS_SCALE)
LIQUIDATION_INCENTIVE_BOUNDS = (0, 5_000)

# An update may move a field by at most this share of its prior value.
MAX_PARAMETER_CHANGE_BPS = 1_000

_NUMERIC_FIELDS = (
    "min_collateral_ratio_bps",
    "liquidation_threshold_bps",
    "close_factor_bps",
    "liquidation_incentive_bps",
)


def _all_unpaused() -> Mapping[Operation, bool]:
    return {op: False for op in Operation}


@dataclass(frozen=True, slots=True)
class RiskConfig:
    """
    Solvency parameters and administrative circuit breakers.

    pause_switches maps each Operation to True when it is paused.
    emergency_paused stops every user operation regardless of the switches.
    last_update is the ledger time of the most recent admin change.
    """
    min_collateral_ratio_bps: int = DEFAULT_MIN_COLLATERAL_RATIO_BPS
    liquidation_threshold_bps: int = DEFAULT_LIQUIDATION_THRESHOLD_BPS
    close_factor_bps: int = DEFAULT_CLOSE_FACTOR_BPS
    liquidation_incentive_bps: int = DEFAULT_LIQUIDATION_INCENTIVE_BPS
    pause_switches: Mapping[Operation, bool] = field(default_factory=_all_unpaused)
    emergency_paused: bool = False
    last_update: int = 0

    def __post_init__(self):
        # Fill in switches for operations the caller left out
        switches = _all_unpaused()
        for op, paused in self.pause_switches.items():
            if not isinstance(op, Operation):
                raise ValueError(f"pause_switches keys must be Operation, got {op!r}")
            switches[op] = bool(paused)
        object.__setattr__(self, 'pause_switches', switches)

    def is_paused(self, operation: Operation) -> bool:
        return self.pause_switches.get(operation, False)


# ============================================================================
# VALIDATION
# ============================================================================

def _check_bounds(name: str, value: int, bounds) -> None:
    low, high = bounds
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if value < low or value > high:
        raise InvalidParameter(f"{name}={value} outside [{low}, {high}]")


def validate_risk_config(config: RiskConfig) -> None:
    """
    Check every field against its documented bounds.

    Raises:
        InvalidParameter: if a field is out of bounds or the minimum collateral
            ratio is below the liquidation threshold
    """
    _check_bounds("min_collateral_ratio_bps", config.min_collateral_ratio_bps, MIN_COLLATERAL_RATIO_BOUNDS)
    _check_bounds("liquidation_threshold_bps", config.liquidation_threshold_bps, LIQUIDATION_THRESHOLD_BOUNDS)
    _check_bounds("close_factor_bps", config.close_factor_bps, CLOSE_FACTOR_BOUNDS)
    _check_bounds("liquidation_incentive_bps", config.liquidation_incentive_bps, LIQUIDATION_INCENTIVE_BOUNDS)
    if config.min_collateral_ratio_bps < config.liquidation_threshold_bps:
        raise InvalidParameter(
            f"min_collateral_ratio_bps ({config.min_collateral_ratio_bps}) must be >= "
            f"liquidation_threshold_bps ({config.liquidation_threshold_bps})"
        )


def check_change_limit(name: str, old_value: int, new_value: int) -> None:
    """
    Reject a change of more than 10% of the prior value.

    Raises:
        ParameterChangeTooLarge: if |new - old| > old * 10%
    """
    max_change = bps_of(abs(old_value), MAX_PARAMETER_CHANGE_BPS)
    if abs(new_value - old_value) > max_change:
        raise ParameterChangeTooLarge(
            f"{name}: change from {old_value} to {new_value} exceeds limit of {max_change}"
        )


def update_risk_config(
    current: RiskConfig,
    now: int,
    min_collateral_ratio_bps: Optional[int] = None,
    liquidation_threshold_bps: Optional[int] = None,
    close_factor_bps: Optional[int] = None,
    liquidation_incentive_bps: Optional[int] = None,
) -> RiskConfig:
    """
    Return a new RiskConfig with the given fields changed.

    Fields left as None keep their current value. Each changed field must
    stay within its bounds and move by at most 10% of its prior value.

    Raises:
        InvalidParameter: if the result violates a bound
        ParameterChangeTooLarge: if any field moves by more than 10%
    """
    changes = {
        "min_collateral_ratio_bps": min_collateral_ratio_bps,
        "liquidation_threshold_bps": liquidation_threshold_bps,
        "close_factor_bps": close_factor_bps,
        "liquidation_incentive_bps": liquidation_incentive_bps,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    updated = replace(current, last_update=now, **changes)
    validate_risk_config(updated)
    for name in _NUMERIC_FIELDS:
        if name in changes:
            check_change_limit(name, getattr(current, name), changes[name])
    return updated


def set_pause_switch(current: RiskConfig, operation: Operation, paused: bool, now: int) -> RiskConfig:
    """Return a new RiskConfig with one operation paused or resumed."""
    switches = dict(current.pause_switches)
    switches[operation] = paused
    return replace(current, pause_switches=switches, last_update=now)


def set_emergency_pause(current: RiskConfig, paused: bool, now: int) -> RiskConfig:
    """Return a new RiskConfig with the emergency pause set or cleared."""
    return replace(current, emergency_paused=paused, last_update=now)


def require_not_paused(config: RiskConfig, operation: Operation) -> None:
    """
    Raise if the operation may not run.

    Raises:
        EmergencyPaused: if the emergency pause is active
        OperationPaused: if the operation's switch is on
    """
    if config.emergency_paused:
        raise EmergencyPaused(f"{operation.value}: protocol is emergency paused")
    if config.is_paused(operation):
        raise OperationPaused(f"{operation.value} is paused")


# ============================================================================
# PURE LIQUIDATION BOUNDS
# ============================================================================

def calculate_max_liquidatable(total_debt: int, config: RiskConfig) -> int:
    """Maximum debt a single liquidation may repay."""
    return bps_of(total_debt, config.close_factor_bps)


def calculate_liquidation_incentive(amount: int, config: RiskConfig) -> int:
    """Incentive earned by the liquidator on a liquidated amount."""
    return bps_of(amount, config.liquidation_incentive_bps)


def is_below_threshold(ratio_bps: Optional[int], config: RiskConfig) -> bool:
    """True if a ratio (None meaning no debt) is under the liquidation threshold."""
    return ratio_bps is not None and ratio_bps < config.liquidation_threshold_bps


def meets_min_collateral_ratio(ratio_bps: Optional[int], config: RiskConfig) -> bool:
    """True if a ratio (None meaning no debt) satisfies the minimum collateral ratio."""
    return ratio_bps is None or ratio_bps >= config.min_collateral_ratio_bps
