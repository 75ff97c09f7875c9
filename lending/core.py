"""
Core types and pure functions for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access, TokenClient for transfers
2. Immutable data structures: OperationRecord (the audit/event record)
3. Exceptions: LendingError and the protocol error taxonomy
4. Checked integer arithmetic bounded to the signed 128-bit range

All amounts are integers in the asset's smallest unit. All rates, ratios and
factors are integers in basis points (10000 = 100%). Timestamps are integer
seconds.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Callable, Dict, Optional, Protocol, runtime_checkable, Mapping
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Basis-point scale: 10000 bps = 100%
BPS_SCALE = 10_000

SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY

# Oracle prices carry 8 decimals; DEFAULT_PRICE is 1.0 in that fixed point.
PRICE_DECIMALS = 8
DEFAULT_PRICE = 10 ** PRICE_DECIMALS

# Signed 128-bit bounds. Amounts outside this range are an Overflow.
I128_MIN = -(2 ** 127)
I128_MAX = 2 ** 127 - 1

# Asset identifier used when the ledger runs on the host's native asset.
NATIVE_ASSET = "native"

# Account that holds pooled funds on behalf of the ledger.
POOL_ACCOUNT = "pool"


# ============================================================================
# ENUMS
# ============================================================================

class Operation(Enum):
    """
    User-facing operations that can be individually paused.

    The value is the name recorded in the operation log.
    """
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATE = "liquidate"
    FLASH_LOAN = "flash_loan"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending ledger errors."""
    pass


class InvalidAmount(LendingError):
    """Raised when an amount is zero or negative where a positive one is required."""
    pass


class InsufficientCollateral(LendingError):
    """Raised when a position has no collateral, or less than the requested withdrawal."""
    pass


class InsufficientCollateralRatio(LendingError):
    """Raised when an operation would leave a position below the minimum collateral ratio."""
    pass


class MaxBorrowExceeded(LendingError):
    """Raised when a borrow exceeds the borrowable amount or the asset debt ceiling."""
    pass


class OperationPaused(LendingError):
    """Raised when the requested operation is switched off by the administrator."""
    pass


class EmergencyPaused(LendingError):
    """Raised for every user operation while the emergency pause is active."""
    pass


class Overflow(LendingError):
    """Raised when checked arithmetic leaves the signed 128-bit range or divides by zero."""
    pass


class NotLiquidatable(LendingError):
    """Raised when a position is not eligible for liquidation."""
    pass


class ExceedsCloseFactor(LendingError):
    """Raised when a liquidation requests more than the close factor allows."""
    pass


class PriceNotAvailable(LendingError):
    """Raised when a price needed for conversion is zero or missing."""
    pass


class ParameterChangeTooLarge(LendingError):
    """Raised when an admin update moves a parameter by more than 10%."""
    pass


class InvalidParameter(LendingError):
    """Raised when a configuration value is outside its documented bounds."""
    pass


class Unauthorized(LendingError):
    """Raised when a non-admin caller attempts an admin operation."""
    pass


class NoDebt(LendingError):
    """Raised when repaying a position that owes nothing."""
    pass


class InsufficientBalance(LendingError):
    """Raised when an account's token balance cannot cover a transfer."""
    pass


class InsufficientLiquidity(LendingError):
    """Raised when the pool cannot fund a borrow or flash loan."""
    pass


class InsufficientReserve(LendingError):
    """Raised when a treasury withdrawal exceeds the reserve balance."""
    pass


class TreasuryNotSet(LendingError):
    """Raised when withdrawing reserves before a treasury address is configured."""
    pass


class AssetNotEnabled(LendingError):
    """Raised when depositing an asset whose deposits are disabled."""
    pass


class FlashLoanNotRepaid(LendingError):
    """Raised when a flash loan callback returns without repaying principal plus fee."""
    pass


class Reentrancy(LendingError):
    """Raised when a mutating operation is entered while another is in progress."""
    pass


class DeadlineExpired(LendingError):
    """Raised when the ledger time is past the caller's deadline."""
    pass


class TransferFailed(LendingError):
    """Raised by a token client when a transfer cannot be completed."""
    pass


# ============================================================================
# CHECKED ARITHMETIC
# ============================================================================

def _check_range(value: int, op: str) -> int:
    if value < I128_MIN or value > I128_MAX:
        raise Overflow(f"{op} result {value} outside signed 128-bit range")
    return value


def checked_add(a: int, b: int) -> int:
    """a + b, raising Overflow outside the signed 128-bit range."""
    return _check_range(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    """a - b, raising Overflow outside the signed 128-bit range."""
    return _check_range(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    """a * b, raising Overflow outside the signed 128-bit range."""
    return _check_range(a * b, "mul")


def checked_div(a: int, b: int) -> int:
    """
    Integer division truncating toward zero.

    Raises:
        Overflow: if b is zero or the result is out of range
    """
    if b == 0:
        raise Overflow("division by zero")
    quotient = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        quotient = -quotient
    return _check_range(quotient, "div")


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b / denominator with the multiplication first.

    Both the intermediate product and the quotient are range checked.
    """
    return checked_div(checked_mul(a, b), denominator)


def bps_of(amount: int, bps: int) -> int:
    """Return amount * bps / 10000 (truncated)."""
    return mul_div(amount, bps, BPS_SCALE)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to lending ledger state.

    Flash loan callbacks and valuation helpers receive a LedgerView. Functions
    accepting a LedgerView parameter declare their read-only intent. The
    LendingLedger class implements this protocol but also provides mutation
    methods.
    """

    @property
    def current_time(self) -> int:
        """Return the current ledger time in seconds."""
        ...

    def get_position(self, user: str) -> 'Position':
        """Return the user's position (an empty position if none exists)."""
        ...

    def get_totals(self, asset: str) -> 'ProtocolTotals':
        """Return aggregate totals for an asset (zeros if none exist)."""
        ...

    def collateral_ratio(self, user: str) -> Optional[int]:
        """Return the user's collateral ratio in bps, or None when debt is zero."""
        ...


@runtime_checkable
class TokenClient(Protocol):
    """
    Token transfer collaborator.

    The ledger calls transfer methods only after its own bookkeeping has been
    written. Any failure must be raised (TransferFailed or another
    LendingError) and aborts the whole operation.
    """

    def balance_of(self, account: str) -> int:
        """Return the account's token balance."""
        ...

    def transfer(self, from_: str, to: str, amount: int) -> None:
        """Move amount from from_ to to."""
        ...

    def transfer_from(self, spender: str, from_: str, to: str, amount: int) -> None:
        """Move amount from from_ to to on behalf of spender."""
        ...


# ============================================================================
# OPERATION RECORD (event sink payload)
# ============================================================================

@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    An executed, immutable record of one successful ledger operation.

    Created by the ledger after an operation has fully applied. Exactly one
    record exists per successful mutation; failed operations leave none.

    Attributes:
        sequence_number: Monotonic sequence within the ledger, one per operation
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        operation: Operation name (Operation.value or an admin action)
        actor: Address that initiated the operation
        timestamp: Ledger time at execution
        amounts: Named amounts moved by the operation
        balances: Resulting balances of the affected position or config
    """
    sequence_number: int
    exec_id: str
    ledger_name: str
    operation: str
    actor: str
    timestamp: int
    amounts: Mapping[str, int] = field(default_factory=dict)
    balances: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.sequence_number < 0:
            raise ValueError(f"sequence_number must be >= 0, got {self.sequence_number}")
        if not self.operation:
            raise ValueError("operation must be non-empty")

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Operation: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   operation   : ' + self.operation)}│",
            f"│{pad('   actor       : ' + self.actor)}│",
            f"│{pad('   ledger_name : ' + self.ledger_name)}│",
            f"│{pad('   timestamp   : ' + str(self.timestamp))}│",
            f"│{pad('   sequence    : ' + str(self.sequence_number))}│",
        ]
        if self.amounts:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Amounts (' + str(len(self.amounts)) + '):')}│")
            for name, value in self.amounts.items():
                lines.append(f"│{pad(f'   {name}: {value}')}│")
        if self.balances:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Balances (' + str(len(self.balances)) + '):')}│")
            for name, value in self.balances.items():
                lines.append(f"│{pad(f'   {name}: {value}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# Type alias for event sink subscribers.
EventSink = Callable[[OperationRecord], None]

# Balance snapshot type used in records and verification reports.
BalanceMap = Dict[str, int]
