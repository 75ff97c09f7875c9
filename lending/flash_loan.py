"""
flash_loan.py - Uncollateralized credit repaid within one operation

A flash loan lends pool liquidity to a receiver, hands control to the
receiver's callback, and requires principal plus fee back before the
operation ends. Anything less fails the whole operation, which the
LendingLedger rolls back.

    fee = amount * fee_bps / 10000
    repaid = pool_balance_after_callback - (pool_balance_before - amount)
    repaid >= amount + fee, otherwise FlashLoanNotRepaid
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable

from .core import (
    BPS_SCALE,
    InvalidAmount, InvalidParameter, InsufficientLiquidity, FlashLoanNotRepaid,
    LedgerView, bps_of, checked_add,
)


DEFAULT_FLASH_LOAN_FEE_BPS = 9
DEFAULT_FLASH_LOAN_MIN_AMOUNT = 1

# Receiver callback: (view, asset, amount, fee) -> None. Must return funds to the pool.
FlashLoanCallback = Callable[[LedgerView, str, int, int], None]


@dataclass(frozen=True, slots=True)
class FlashLoanConfig:
    """
    Flash loan limits and fee.

    max_amount of 0 means no limit beyond pool liquidity.
    """
    fee_bps: int = DEFAULT_FLASH_LOAN_FEE_BPS
    min_amount: int = DEFAULT_FLASH_LOAN_MIN_AMOUNT
    max_amount: int = 0


def validate_flash_loan_config(config: FlashLoanConfig) -> None:
    """
    Raises:
        InvalidParameter: if the fee is outside [0, 10000], min_amount < 1,
            or a non-zero max_amount is below min_amount
    """
    if config.fee_bps < 0 or config.fee_bps > BPS_SCALE:
        raise InvalidParameter(f"fee_bps={config.fee_bps} outside [0, {BPS_SCALE}]")
    if config.min_amount < 1:
        raise InvalidParameter(f"min_amount must be >= 1, got {config.min_amount}")
    if config.max_amount and config.max_amount < config.min_amount:
        raise InvalidParameter(
            f"max_amount ({config.max_amount}) is below min_amount ({config.min_amount})"
        )


def calculate_flash_loan_fee(amount: int, config: FlashLoanConfig) -> int:
    """
    Example:
        calculate_flash_loan_fee(500, FlashLoanConfig(fee_bps=900))   # 45
    """
    return bps_of(amount, config.fee_bps)


def check_flash_loan_request(amount: int, available_liquidity: int, config: FlashLoanConfig) -> int:
    """
    Validate a flash loan request and return its fee.

    Raises:
        InvalidAmount: if amount is outside [min_amount, max_amount]
        InsufficientLiquidity: if the pool holds less than amount
    """
    if amount < config.min_amount:
        raise InvalidAmount(f"flash loan {amount} below minimum {config.min_amount}")
    if config.max_amount and amount > config.max_amount:
        raise InvalidAmount(f"flash loan {amount} above maximum {config.max_amount}")
    if amount > available_liquidity:
        raise InsufficientLiquidity(
            f"flash loan {amount} exceeds available liquidity {available_liquidity}"
        )
    return calculate_flash_loan_fee(amount, config)


def check_flash_loan_repayment(amount: int, fee: int, balance_before: int, balance_after: int) -> int:
    """
    Confirm the pool got principal plus fee back.

    balance_before is the pool balance before the loan was sent out.

    Returns:
        The amount repaid by the receiver

    Raises:
        FlashLoanNotRepaid: if less than amount + fee came back
    """
    repaid = balance_after - (balance_before - amount)
    required = checked_add(amount, fee)
    if repaid < required:
        raise FlashLoanNotRepaid(f"flash loan repaid {repaid}, required {required}")
    return repaid
