"""
accrual.py - Per-position interest accrual

Pure functions over Position records. Interest is simple interest on the
outstanding principal, charged from the last accrual time to now:

    interest = debt * rate_bps * elapsed / (10000 * SECONDS_PER_YEAR)

The multiplications happen before the single division so truncation loses
at most one unit per accrual.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Tuple

from .core import (
    BPS_SCALE, SECONDS_PER_YEAR,
    checked_add, checked_mul, mul_div,
)
from .position import Position


def calculate_accrued_interest(principal: int, rate_bps: int, last_accrual_time: int, now: int) -> int:
    """
    Interest on principal at an annual rate between two times.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Returns 0 when principal or rate is zero, or when now <= last_accrual_time.

    Raises:
        Overflow: if an intermediate product leaves the 128-bit range
    """
    if principal <= 0 or rate_bps <= 0 or now <= last_accrual_time:
        return 0
    elapsed = now - last_accrual_time
    return mul_div(checked_mul(principal, rate_bps), elapsed, BPS_SCALE * SECONDS_PER_YEAR)


def accrue(position: Position, rate_bps: int, now: int) -> Tuple[Position, int]:
    """
    Bring a position's interest up to date.

    A position without principal has its interest cleared and its clock reset.
    A clock at or ahead of now is left untouched.

    Returns:
        (updated_position, interest_added)
    """
    if position.debt == 0:
        if position.accrued_interest == 0 and position.last_accrual_time == now:
            return position, 0
        return replace(position, accrued_interest=0, last_accrual_time=now), 0
    if now <= position.last_accrual_time:
        return position, 0

    interest = calculate_accrued_interest(position.debt, rate_bps, position.last_accrual_time, now)
    updated = replace(
        position,
        accrued_interest=checked_add(position.accrued_interest, interest),
        last_accrual_time=now,
    )
    return updated, interest
