"""
position.py - Per-user and per-asset ledger records

Frozen dataclasses with value semantics: every change creates a NEW
instance via dataclasses.replace(). The LendingLedger is the only code that
persists them.

Records:
    Position:       collateral, principal, accrued interest, last accrual time
    ProtocolTotals: per-asset aggregates (collateral, borrows, reserves, income)
    AssetParams:    per-asset deposit and borrow parameters
    UserActivity:   cumulative per-user activity counters
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Dict, Optional

from .core import BPS_SCALE, I128_MAX


def _require_non_negative(record, names) -> None:
    for name in names:
        value = getattr(record, name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"{type(record).__name__}.{name} must be int, got {type(value).__name__}")
        if value < 0:
            raise ValueError(f"{type(record).__name__}.{name} must be >= 0, got {value}")
        if value > I128_MAX:
            raise ValueError(f"{type(record).__name__}.{name} exceeds signed 128-bit range")


# ============================================================================
# POSITION
# ============================================================================

@dataclass(frozen=True, slots=True)
class Position:
    """
    A user's collateral and debt.

    debt is the outstanding principal; accrued_interest is interest that has
    been charged but not yet repaid. Both are owed, interest first.
    """
    collateral: int = 0
    debt: int = 0
    accrued_interest: int = 0
    last_accrual_time: int = 0

    def __post_init__(self):
        _require_non_negative(self, ("collateral", "debt", "accrued_interest", "last_accrual_time"))

    @property
    def total_debt(self) -> int:
        """Principal plus accrued interest."""
        return self.debt + self.accrued_interest

    @property
    def is_empty(self) -> bool:
        return self.collateral == 0 and self.total_debt == 0

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ============================================================================
# PROTOCOL TOTALS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ProtocolTotals:
    """
    Aggregate balances for one asset.

    total_collateral equals the sum of user collateral exactly. total_borrows
    tracks the sum of user principal plus accrued interest. reserve_balance is
    the protocol's share of realized income, never more than
    total_interest_accrued (all interest and fee income ever charged).
    """
    total_collateral: int = 0
    total_borrows: int = 0
    reserve_balance: int = 0
    total_interest_accrued: int = 0

    def __post_init__(self):
        _require_non_negative(
            self,
            ("total_collateral", "total_borrows", "reserve_balance", "total_interest_accrued"),
        )

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ============================================================================
# ASSET PARAMETERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetParams:
    """
    Deposit and borrow parameters for one asset.

    collateral_factor_bps weights collateral when it is valued against debt
    in a different asset. max_deposit and debt_ceiling of 0 mean unlimited.
    borrow_fee_bps is an origination fee withheld from each borrow and
    credited to reserves.
    """
    deposit_enabled: bool = True
    collateral_factor_bps: int = BPS_SCALE
    max_deposit: int = 0
    debt_ceiling: int = 0
    borrow_fee_bps: int = 0

    def __post_init__(self):
        _require_non_negative(self, ("collateral_factor_bps", "max_deposit", "debt_ceiling", "borrow_fee_bps"))
        if self.collateral_factor_bps > BPS_SCALE:
            raise ValueError(f"collateral_factor_bps must be <= {BPS_SCALE}, got {self.collateral_factor_bps}")
        if self.borrow_fee_bps > BPS_SCALE:
            raise ValueError(f"borrow_fee_bps must be <= {BPS_SCALE}, got {self.borrow_fee_bps}")


# ============================================================================
# USER ACTIVITY
# ============================================================================

@dataclass(frozen=True, slots=True)
class UserActivity:
    """Cumulative activity counters for one user."""
    total_deposits: int = 0
    total_withdrawals: int = 0
    total_borrows: int = 0
    total_repayments: int = 0
    times_liquidated: int = 0
    collateral_seized: int = 0
    operation_count: int = 0
    first_activity: Optional[int] = None
    last_activity: Optional[int] = None

    def record(self, timestamp: int, **increments: int) -> UserActivity:
        """
        Return a new UserActivity with counters incremented.

        Example:
            activity = activity.record(now, total_deposits=100)
        """
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for name, amount in increments.items():
            if name not in values or name in ("first_activity", "last_activity"):
                raise ValueError(f"Unknown activity counter: {name}")
            values[name] += amount
        values["operation_count"] += 1
        if values["first_activity"] is None:
            values["first_activity"] = timestamp
        values["last_activity"] = timestamp
        return UserActivity(**values)
