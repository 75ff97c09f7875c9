#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Ledger Step by Step

A pedagogical walk through the lending ledger. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Borrowing       - Deposits, the minimum ratio, rejected borrows
  4-5:   Interest        - The rate curve, accrual and repayment
  6:     Liquidation     - A price drop in a cross-asset market
  7-8:   Protocol Income - Flash loans and the reserve
  9:     Verification    - Conservation across the whole history

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from typing import Dict
import sys

from lending import (
    LendingLedger, RiskConfig, FlashLoanConfig, AssetParams, calculate_borrow_rate,
    StaticPriceOracle, LendingError, TransferFailed,
    SECONDS_PER_YEAR, DEFAULT_PRICE, NATIVE_ASSET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    starting_balance: int = 1_000_000
    lender_deposit: int = 100_000
    alice_collateral: int = 150
    alice_borrow: int = 100
    flash_amount: int = 500
    flash_fee_bps: int = 900


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


class DemoToken:
    """Balances in a dict; enough of a TokenClient for the tutorial."""

    def __init__(self, asset: str, balances: Dict[str, int]):
        self.asset = asset
        self.balances = dict(balances)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def transfer(self, from_: str, to: str, amount: int) -> None:
        if self.balance_of(from_) < amount:
            raise TransferFailed(f"{from_} cannot send {amount} {self.asset}")
        self.balances[from_] = self.balance_of(from_) - amount
        self.balances[to] = self.balance_of(to) + amount

    def transfer_from(self, spender: str, from_: str, to: str, amount: int) -> None:
        self.transfer(from_, to, amount)


def funded(asset: str) -> DemoToken:
    accounts = ("alice", "bob", "lp", "liquidator")
    return DemoToken(asset, {a: CONFIG.starting_balance for a in accounts})


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


# ============================================================================
# PHASE 1: BORROWING (Steps 1-3)
# ============================================================================

def step_01_create_ledger():
    step_header(1, "A Fresh Market",
        "Create a single-asset market and fund it with a lender's deposit.")

    token = funded(NATIVE_ASSET)
    ledger = LendingLedger(
        "tutorial", admin="admin", tokens={NATIVE_ASSET: token},
        risk_config=RiskConfig(
            min_collateral_ratio_bps=15_000, liquidation_threshold_bps=10_000,
            close_factor_bps=5_000, liquidation_incentive_bps=1_000,
        ),
        flash_loan_config=FlashLoanConfig(fee_bps=CONFIG.flash_fee_bps),
        treasury="treasury",
        verbose=True,
    )
    ledger.deposit("lp", CONFIG.lender_deposit)

    section_header("Initial State")
    print(f"Ledger:          {ledger!r}")
    print(f"Pool balance:    {token.balance_of('pool')}")
    print(f"Operation log:   {len(ledger.operation_log)} record(s)")
    return ledger, token


def step_02_borrow_at_boundary(ledger: LendingLedger):
    step_header(2, "Borrowing at 150%",
        "A borrow exactly at the minimum collateral ratio succeeds.")

    ledger.deposit("alice", CONFIG.alice_collateral)
    result = ledger.borrow("alice", CONFIG.alice_borrow)
    print(f"Received:         {result.received}")
    print(f"Collateral ratio: {ledger.collateral_ratio('alice')} bps")
    print(f"Max borrowable:   {ledger.max_borrowable('alice')}")


def step_03_rejected_borrow(ledger: LendingLedger):
    step_header(3, "A Rejected Borrow",
        "Borrowing past the minimum ratio fails and changes nothing.")

    before = ledger.snapshot()
    try:
        ledger.borrow("alice", 70)
    except LendingError as exc:
        print(f"Rejected with {type(exc).__name__}")
    print(f"State unchanged:  {ledger.snapshot() == before}")


# ============================================================================
# PHASE 2: INTEREST (Steps 4-5)
# ============================================================================

def step_04_rates(ledger: LendingLedger):
    step_header(4, "The Rate Curve",
        "Utilization drives the borrow rate; lenders earn the supply rate.")

    utilization, borrow_rate, supply_rate = ledger.current_rates()
    print(f"Utilization: {utilization} bps")
    print(f"Borrow rate: {borrow_rate} bps")
    print(f"Supply rate: {supply_rate} bps")

    config = ledger.interest_rate_config
    section_header("Curve Samples")
    for u in (0, 4_000, 8_000, 9_000, 10_000):
        print(f"  {u:>6} bps -> {calculate_borrow_rate(u, config):>6} bps")


def step_05_interest_and_repay(ledger: LendingLedger):
    step_header(5, "A Year Later",
        "Interest accrues on principal and is paid before principal.")

    ledger.advance_time(ledger.current_time + SECONDS_PER_YEAR)
    owed = ledger.preview_position("alice").total_debt
    print(f"Owed after one year: {owed}")
    result = ledger.repay("alice", owed)
    print(f"Interest paid:  {result.interest_paid}")
    print(f"Principal paid: {result.principal_paid}")
    print(f"Reserve:        {ledger.get_totals(NATIVE_ASSET).reserve_balance}")


# ============================================================================
# PHASE 3: LIQUIDATION (Step 6)
# ============================================================================

def step_06_liquidation():
    step_header(6, "Liquidation After a Price Drop",
        "A position below the threshold is repaid by a liquidator for collateral.")

    xlm, usdc = funded("XLM"), funded("USDC")
    usdc.balances["pool"] = CONFIG.lender_deposit
    oracle = StaticPriceOracle({"XLM": DEFAULT_PRICE, "USDC": DEFAULT_PRICE})
    market = LendingLedger(
        "xlm-usdc", admin="admin", tokens={"XLM": xlm, "USDC": usdc},
        collateral_asset="XLM", debt_asset="USDC", oracle=oracle,
        risk_config=RiskConfig(
            min_collateral_ratio_bps=15_000, liquidation_threshold_bps=10_000,
            close_factor_bps=10_000, liquidation_incentive_bps=1_000,
        ),
        asset_params={"XLM": AssetParams(collateral_factor_bps=10_000)},
        verbose=False,
    )
    market.deposit("alice", 150)
    market.borrow("alice", 100)

    oracle.update_price("XLM", DEFAULT_PRICE // 2)
    print(f"Ratio at half price: {market.liquidation_ratio('alice')} bps")
    quote = market.liquidate("liquidator", "alice", 100)
    print(f"Debt repaid:        {quote.debt_liquidated}")
    print(f"Collateral seized:  {quote.collateral_seized}")
    print(f"Position after:     {market.get_position('alice')}")


# ============================================================================
# PHASE 4: PROTOCOL INCOME (Steps 7-8)
# ============================================================================

def step_07_flash_loan(ledger: LendingLedger, token: DemoToken):
    step_header(7, "A Flash Loan",
        "Borrow without collateral, as long as it comes back with a fee.")

    def arbitrage(view, asset, amount, fee):
        print(f"  callback holds {amount} {asset}, owes fee {fee}")
        token.transfer("bob", "pool", amount + fee)

    result = ledger.flash_loan("bob", CONFIG.flash_amount, arbitrage)
    print(f"Repaid: {result.repaid}")


def step_08_treasury(ledger: LendingLedger, token: DemoToken):
    step_header(8, "Paying the Treasury",
        "The administrator moves accumulated reserves to the treasury.")

    reserve = ledger.get_totals(NATIVE_ASSET).reserve_balance
    ledger.withdraw_reserve_to_treasury("admin", reserve)
    print(f"Treasury balance: {token.balance_of('treasury')}")


# ============================================================================
# PHASE 5: VERIFICATION (Step 9)
# ============================================================================

def step_09_conservation(ledger: LendingLedger):
    step_header(9, "Conservation",
        "Aggregate totals agree with the per-user records.")

    result = ledger.verify_conservation()
    print(f"Valid:  {result['valid']}")
    for name, value in result['totals'].items():
        print(f"  {name:<18} {value}")
    print(f"\nOperations recorded: {len(ledger.operation_log)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LENDING LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    wait_for_enter()

    ledger, token = step_01_create_ledger()
    wait_for_enter()
    step_02_borrow_at_boundary(ledger)
    wait_for_enter()
    step_03_rejected_borrow(ledger)
    wait_for_enter()
    step_04_rates(ledger)
    wait_for_enter()
    step_05_interest_and_repay(ledger)
    wait_for_enter()
    step_06_liquidation()
    wait_for_enter()
    step_07_flash_loan(ledger, token)
    wait_for_enter()
    step_08_treasury(ledger, token)
    wait_for_enter()
    step_09_conservation(ledger)


if __name__ == "__main__":
    main()
