"""
reserve.py - Protocol reserve accounting

Realized interest is split between lenders and the protocol reserve:

    reserve_amount = interest * reserve_factor_bps / 10000
    lender_amount  = interest - reserve_amount

The reserve can be paid out to a treasury address by the administrator.
The LendingLedger decrements the reserve balance before transferring tokens.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Optional, Tuple

from .core import (
    InvalidAmount, InvalidParameter, InsufficientReserve, TreasuryNotSet,
    bps_of, checked_add, checked_sub,
)
from .position import ProtocolTotals


DEFAULT_RESERVE_FACTOR_BPS = 1_000
MAX_RESERVE_FACTOR_BPS = 5_000


def validate_reserve_factor(reserve_factor_bps: int) -> None:
    """
    Raises:
        InvalidParameter: if the factor is outside [0, 5000]
    """
    if not isinstance(reserve_factor_bps, int) or isinstance(reserve_factor_bps, bool):
        raise InvalidParameter(f"reserve_factor_bps must be an integer, got {reserve_factor_bps!r}")
    if reserve_factor_bps < 0 or reserve_factor_bps > MAX_RESERVE_FACTOR_BPS:
        raise InvalidParameter(
            f"reserve_factor_bps={reserve_factor_bps} outside [0, {MAX_RESERVE_FACTOR_BPS}]"
        )


def calculate_reserve_split(interest: int, reserve_factor_bps: int) -> Tuple[int, int]:
    """
    Split realized interest into (reserve_amount, lender_amount).

    Example:
        calculate_reserve_split(1000, 1000)   # (100, 900)
    """
    if interest <= 0:
        return 0, 0
    reserve_amount = bps_of(interest, reserve_factor_bps)
    return reserve_amount, checked_sub(interest, reserve_amount)


def accrue_reserve(totals: ProtocolTotals, interest: int, reserve_factor_bps: int) -> Tuple[ProtocolTotals, int]:
    """
    Credit the reserve share of realized interest.

    Returns:
        (updated_totals, reserve_amount)
    """
    reserve_amount, _ = calculate_reserve_split(interest, reserve_factor_bps)
    if reserve_amount == 0:
        return totals, 0
    updated = replace(totals, reserve_balance=checked_add(totals.reserve_balance, reserve_amount))
    return updated, reserve_amount


def credit_fee(totals: ProtocolTotals, fee: int) -> ProtocolTotals:
    """
    Credit a protocol fee in full to reserves.

    Fees are protocol income, so total_interest_accrued grows with them.
    """
    if fee <= 0:
        return totals
    return replace(
        totals,
        reserve_balance=checked_add(totals.reserve_balance, fee),
        total_interest_accrued=checked_add(totals.total_interest_accrued, fee),
    )


def withdraw_reserve(totals: ProtocolTotals, amount: int, treasury: Optional[str]) -> ProtocolTotals:
    """
    Debit a treasury withdrawal from the reserve balance.

    Raises:
        TreasuryNotSet: if no treasury address is configured
        InvalidAmount: if amount <= 0
        InsufficientReserve: if amount exceeds the reserve balance
    """
    if not treasury:
        raise TreasuryNotSet("treasury address is not configured")
    if amount <= 0:
        raise InvalidAmount(f"withdrawal amount must be positive, got {amount}")
    if amount > totals.reserve_balance:
        raise InsufficientReserve(
            f"withdrawal {amount} exceeds reserve balance {totals.reserve_balance}"
        )
    return replace(totals, reserve_balance=totals.reserve_balance - amount)
