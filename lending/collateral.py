"""
collateral.py - Collateral valuation and solvency checks

Pure functions evaluating a Position against a RiskConfig. The LendingLedger
calls these after accruing interest, so ratios always see up-to-date debt.

Key Formulas:
    collateral_value = collateral                                   (same asset)
    collateral_value = collateral * collateral_factor_bps / 10000   (cross asset)
    collateral_ratio = collateral_value * 10000 / (debt + accrued_interest)
    max_borrowable   = collateral_value * 10000 / min_ratio - total_debt   (>= 0)

A position without debt has no ratio (None), which always passes.
"""

from __future__ import annotations
from typing import Optional

from .core import (
    BPS_SCALE,
    InsufficientCollateral, InsufficientCollateralRatio, MaxBorrowExceeded,
    bps_of, checked_add, checked_sub, mul_div,
)
from .position import Position
from .risk_config import RiskConfig, meets_min_collateral_ratio


def calculate_collateral_value(collateral: int, collateral_factor_bps: int, same_asset: bool) -> int:
    """Risk-weighted value of collateral in debt units."""
    if same_asset:
        return collateral
    return bps_of(collateral, collateral_factor_bps)


def calculate_collateral_ratio(collateral_value: int, total_debt: int) -> Optional[int]:
    """
    Collateral ratio in bps, or None when there is no debt.

    Example:
        calculate_collateral_ratio(150, 100)   # 15000 (150%)
        calculate_collateral_ratio(150, 0)     # None
    """
    if total_debt <= 0:
        return None
    return mul_div(collateral_value, BPS_SCALE, total_debt)


def calculate_max_borrowable(collateral_value: int, total_debt: int, config: RiskConfig) -> int:
    """Additional debt a position could take on at the minimum ratio (never negative)."""
    capacity = mul_div(collateral_value, BPS_SCALE, config.min_collateral_ratio_bps)
    return max(0, checked_sub(capacity, total_debt))


def position_ratio(position: Position, collateral_factor_bps: int, same_asset: bool) -> Optional[int]:
    """Collateral ratio of a position in bps, or None when it has no debt."""
    value = calculate_collateral_value(position.collateral, collateral_factor_bps, same_asset)
    return calculate_collateral_ratio(value, position.total_debt)


# ============================================================================
# GUARDS
# ============================================================================

def check_borrow(
    position: Position,
    amount: int,
    config: RiskConfig,
    collateral_factor_bps: int,
    same_asset: bool,
) -> None:
    """
    Validate a new borrow against an accrued position.

    Checks, in order: collateral exists; the resulting ratio meets the
    minimum; the amount fits within max_borrowable.

    Raises:
        InsufficientCollateral: if the position has no collateral
        InsufficientCollateralRatio: if the ratio after borrowing is too low
        MaxBorrowExceeded: if amount exceeds max_borrowable
    """
    if position.collateral <= 0:
        raise InsufficientCollateral("borrow requires collateral")

    value = calculate_collateral_value(position.collateral, collateral_factor_bps, same_asset)
    new_debt = checked_add(position.total_debt, amount)
    ratio = calculate_collateral_ratio(value, new_debt)
    if not meets_min_collateral_ratio(ratio, config):
        raise InsufficientCollateralRatio(
            f"ratio after borrow {ratio} bps < minimum {config.min_collateral_ratio_bps} bps"
        )

    max_borrowable = calculate_max_borrowable(value, position.total_debt, config)
    if amount > max_borrowable:
        raise MaxBorrowExceeded(f"borrow {amount} exceeds max borrowable {max_borrowable}")


def check_withdraw(
    position: Position,
    amount: int,
    config: RiskConfig,
    collateral_factor_bps: int,
    same_asset: bool,
) -> None:
    """
    Validate a withdrawal against an accrued position.

    Raises:
        InsufficientCollateral: if amount exceeds the collateral balance
        InsufficientCollateralRatio: if the remaining collateral is too low
            for the outstanding debt
    """
    if amount > position.collateral:
        raise InsufficientCollateral(
            f"withdraw {amount} exceeds collateral {position.collateral}"
        )
    if position.total_debt == 0:
        return
    remaining = position.collateral - amount
    value = calculate_collateral_value(remaining, collateral_factor_bps, same_asset)
    ratio = calculate_collateral_ratio(value, position.total_debt)
    if not meets_min_collateral_ratio(ratio, config):
        raise InsufficientCollateralRatio(
            f"ratio after withdraw {ratio} bps < minimum {config.min_collateral_ratio_bps} bps"
        )
