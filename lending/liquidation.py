"""
liquidation.py - Liquidation of undercollateralized positions

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit output):
   - LiquidationQuote: every amount a liquidation moves, computed up front

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take the accrued position, the RiskConfig and both prices explicitly
   - No ledger access, trivially testable

3. APPLICATION (apply_liquidation):
   - Turns a quote into the borrower's new Position

The LendingLedger accrues interest, fetches prices, calls
calculate_liquidation(), commits apply_liquidation(), then moves tokens.

Key Formulas:
    collateral_value  = collateral                                   (same asset)
    collateral_value  = collateral * collateral_price / debt_price   (cross asset)
    liquidatable      iff total_debt > 0 and value * 10000 / total_debt < threshold
    max_liquidatable  = total_debt * close_factor_bps / 10000
    incentive         = amount * incentive_bps / 10000
    collateral_seized = amount * debt_price / collateral_price * (10000 + incentive_bps) / 10000
                        capped at the borrower's collateral
    safe_seizure      = amount * ratio_before / 10000 * debt_price / collateral_price
                        (partial liquidations only)

Debt is repaid interest first, then principal. A partial liquidation never
lowers the borrower's collateral ratio: when the full incentive would, the
seizure is cut to safe_seizure, which leaves the ratio where it was. Below
100% + incentive this is every partial liquidation, so the liquidator then
receives less than the nominal incentive.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional

from .core import (
    BPS_SCALE,
    InvalidAmount, NotLiquidatable, ExceedsCloseFactor, PriceNotAvailable,
    checked_sub, mul_div,
)
from .collateral import calculate_collateral_ratio
from .position import Position
from .risk_config import (
    RiskConfig, calculate_max_liquidatable, calculate_liquidation_incentive, is_below_threshold,
)


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    The outcome of liquidating a position by a given amount.

    debt_liquidated = interest_repaid + principal_repaid.
    incentive is the nominal bonus; collateral_seized may carry less of it
    when the full bonus would lower the ratio of a partial liquidation.
    ratio_before / ratio_after are in bps (None once the debt is cleared).
    """
    debt_liquidated: int
    interest_repaid: int
    principal_repaid: int
    collateral_seized: int
    incentive: int
    ratio_before: int
    ratio_after: Optional[int]

    @property
    def clears_debt(self) -> bool:
        return self.ratio_after is None


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_collateral_in_debt_terms(
    collateral: int,
    collateral_price: int,
    debt_price: int,
    same_asset: bool,
) -> int:
    """
    Value of collateral expressed in units of the debt asset.

    Raises:
        PriceNotAvailable: if the debt price is zero for a cross-asset position
    """
    if same_asset:
        return collateral
    if debt_price <= 0:
        raise PriceNotAvailable("debt asset price is zero")
    return mul_div(collateral, collateral_price, debt_price)


def calculate_collateral_seized(
    amount: int,
    collateral_price: int,
    debt_price: int,
    incentive_bps: int,
    same_asset: bool,
) -> int:
    """
    Collateral owed to a liquidator for repaying amount of debt, incentive included.

    Not capped; see calculate_liquidation().

    Raises:
        PriceNotAvailable: if the collateral price is zero for a cross-asset position
    """
    if same_asset:
        base = amount
    else:
        if collateral_price <= 0:
            raise PriceNotAvailable("collateral asset price is zero")
        base = mul_div(amount, debt_price, collateral_price)
    return mul_div(base, BPS_SCALE + incentive_bps, BPS_SCALE)


def calculate_liquidation_ratio(
    position: Position,
    collateral_price: int,
    debt_price: int,
    same_asset: bool,
) -> Optional[int]:
    """Price-converted collateral ratio in bps, or None when there is no debt."""
    value = calculate_collateral_in_debt_terms(position.collateral, collateral_price, debt_price, same_asset)
    return calculate_collateral_ratio(value, position.total_debt)


def is_liquidatable(
    position: Position,
    config: RiskConfig,
    collateral_price: int,
    debt_price: int,
    same_asset: bool,
) -> bool:
    """True if the position has debt and its ratio is below the liquidation threshold."""
    ratio = calculate_liquidation_ratio(position, collateral_price, debt_price, same_asset)
    return is_below_threshold(ratio, config)


def calculate_safe_seizure(
    amount: int,
    ratio_before: int,
    collateral: int,
    collateral_price: int,
    debt_price: int,
    same_asset: bool,
) -> int:
    """
    Seizure cap for a partial liquidation of amount that keeps the ratio at ratio_before.

    Takes amount * ratio_before / 10000 in debt terms and converts it to
    collateral units, capped at collateral. Every division truncates, so the
    remaining collateral is worth at least (total_debt - amount) * ratio_before
    / 10000 and the ratio after cannot fall below ratio_before.

    Raises:
        PriceNotAvailable: if the collateral price is zero for a cross-asset position
    """
    cap_value = mul_div(amount, ratio_before, BPS_SCALE)
    if same_asset:
        return min(cap_value, collateral)
    if collateral_price <= 0:
        raise PriceNotAvailable("collateral asset price is zero")
    return min(mul_div(cap_value, debt_price, collateral_price), collateral)


def calculate_liquidation(
    position: Position,
    requested_amount: int,
    config: RiskConfig,
    collateral_price: int,
    debt_price: int,
    same_asset: bool,
) -> LiquidationQuote:
    """
    Compute a liquidation of requested_amount against an accrued position.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        position: Borrower position with interest already accrued
        requested_amount: Debt the liquidator offers to repay
        config: Current risk configuration
        collateral_price: Oracle price of the collateral asset
        debt_price: Oracle price of the debt asset
        same_asset: True when collateral and debt are the same asset (1:1)

    Returns:
        LiquidationQuote with all amounts

    Raises:
        InvalidAmount: if requested_amount <= 0
        NotLiquidatable: if the position has no debt or is above the threshold
        ExceedsCloseFactor: if requested_amount exceeds the close factor bound
        PriceNotAvailable: if a needed price is zero
    """
    if requested_amount <= 0:
        raise InvalidAmount(f"liquidation amount must be positive, got {requested_amount}")

    total_debt = position.total_debt
    if total_debt == 0:
        raise NotLiquidatable("position has no debt")

    ratio_before = calculate_liquidation_ratio(position, collateral_price, debt_price, same_asset)
    if not is_below_threshold(ratio_before, config):
        raise NotLiquidatable(
            f"ratio {ratio_before} bps is not below threshold {config.liquidation_threshold_bps} bps"
        )

    max_liquidatable = calculate_max_liquidatable(total_debt, config)
    if requested_amount > max_liquidatable:
        raise ExceedsCloseFactor(
            f"requested {requested_amount} exceeds close factor limit {max_liquidatable}"
        )
    amount = min(requested_amount, total_debt)

    incentive = calculate_liquidation_incentive(amount, config)
    seized = calculate_collateral_seized(
        amount, collateral_price, debt_price, config.liquidation_incentive_bps, same_asset
    )
    seized = min(seized, position.collateral)

    interest_repaid = min(amount, position.accrued_interest)
    principal_repaid = checked_sub(amount, interest_repaid)

    if amount < total_debt:
        seized = min(seized, calculate_safe_seizure(
            amount, ratio_before, position.collateral, collateral_price, debt_price, same_asset,
        ))

    after = Position(
        collateral=position.collateral - seized,
        debt=position.debt - principal_repaid,
        accrued_interest=position.accrued_interest - interest_repaid,
        last_accrual_time=position.last_accrual_time,
    )
    ratio_after = calculate_liquidation_ratio(after, collateral_price, debt_price, same_asset)

    return LiquidationQuote(
        debt_liquidated=amount,
        interest_repaid=interest_repaid,
        principal_repaid=principal_repaid,
        collateral_seized=seized,
        incentive=incentive,
        ratio_before=ratio_before,
        ratio_after=ratio_after,
    )


def apply_liquidation(position: Position, quote: LiquidationQuote) -> Position:
    """Return the borrower's position after a quoted liquidation."""
    return replace(
        position,
        collateral=checked_sub(position.collateral, quote.collateral_seized),
        debt=checked_sub(position.debt, quote.principal_repaid),
        accrued_interest=checked_sub(position.accrued_interest, quote.interest_repaid),
    )


def calculate_max_liquidation(position: Position, config: RiskConfig) -> int:
    """Largest amount a liquidator may request right now (close factor bound)."""
    return min(calculate_max_liquidatable(position.total_debt, config), position.total_debt)
