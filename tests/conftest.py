"""
conftest.py - Shared pytest fixtures for LendingLedger tests

Provides common fixtures used across unit, functional and conformance tests:
- Token clients with funded users
- Single-asset ledgers (default and scenario risk configs)
- Cross-asset ledgers with a static price oracle
- Comparison utilities
"""

import pytest
from typing import Any, Dict

from lending import (
    LendingLedger,
    RiskConfig,
    InterestRateConfig,
    FlashLoanConfig,
    AssetParams,
    StaticPriceOracle,
    NATIVE_ASSET,
    DEFAULT_PRICE,
)

from tests.fake_token import FakeToken


USERS = ("alice", "bob", "carol", "dave")
ADMIN = "admin"
TREASURY = "treasury"
STARTING_BALANCE = 1_000_000


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def funded_token(asset: str = NATIVE_ASSET, amount: int = STARTING_BALANCE, pool: int = 0) -> FakeToken:
    """Token with every test user (and a liquidity provider) funded."""
    balances = {user: amount for user in USERS}
    balances["lp"] = amount
    balances["liquidator"] = amount
    if pool:
        balances["pool"] = pool
    return FakeToken(asset, balances)


def scenario_risk_config(**overrides) -> RiskConfig:
    """150% minimum ratio, 100% liquidation threshold."""
    params = dict(
        min_collateral_ratio_bps=15_000,
        liquidation_threshold_bps=10_000,
        close_factor_bps=5_000,
        liquidation_incentive_bps=1_000,
    )
    params.update(overrides)
    return RiskConfig(**params)


def zero_rate_config() -> InterestRateConfig:
    """A rate curve that charges nothing, for tests where time must not matter."""
    return InterestRateConfig(
        base_rate_bps=0, multiplier_bps=0, jump_multiplier_bps=0,
        rate_floor_bps=0, rate_ceiling_bps=0, spread_bps=0,
    )


def make_ledger(token: FakeToken, **kwargs) -> LendingLedger:
    """Single-asset ledger on token with quiet output and test_mode on."""
    params: Dict[str, Any] = dict(verbose=False, test_mode=True, treasury=TREASURY)
    params.update(kwargs)
    return LendingLedger("test", ADMIN, {token.asset: token}, collateral_asset=token.asset, **params)


def make_cross_asset_ledger(collateral: FakeToken, debt: FakeToken, oracle, **kwargs) -> LendingLedger:
    params: Dict[str, Any] = dict(verbose=False, test_mode=True, treasury=TREASURY)
    params.update(kwargs)
    return LendingLedger(
        "cross", ADMIN,
        {collateral.asset: collateral, debt.asset: debt},
        collateral_asset=collateral.asset,
        debt_asset=debt.asset,
        oracle=oracle,
        **params,
    )


def ledger_state(ledger: LendingLedger) -> Dict[str, Any]:
    """Everything observable about a ledger, for before/after comparisons."""
    return {
        "store": ledger.snapshot(),
        "log_length": len(ledger.operation_log),
        "next_sequence": ledger._next_sequence,
    }


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def token():
    """Native token with every test user funded."""
    return funded_token()


@pytest.fixture
def ledger(token):
    """Single-asset ledger with default configuration."""
    return make_ledger(token)


@pytest.fixture
def scenario_ledger(token):
    """Single-asset ledger with a 150% minimum ratio and no interest."""
    return make_ledger(
        token,
        risk_config=scenario_risk_config(),
        interest_rate_config=zero_rate_config(),
    )


@pytest.fixture
def funded_pool_ledger(token):
    """Single-asset ledger where the liquidity provider has deposited 100_000."""
    ledger = make_ledger(token, risk_config=scenario_risk_config())
    ledger.deposit("lp", 100_000)
    return ledger


@pytest.fixture
def flash_ledger(token):
    """Ledger with a 9% flash loan fee and liquidity in the pool."""
    ledger = make_ledger(token, flash_loan_config=FlashLoanConfig(fee_bps=900))
    ledger.deposit("lp", 10_000)
    return ledger


# =============================================================================
# CROSS-ASSET FIXTURES
# =============================================================================

@pytest.fixture
def collateral_token():
    return funded_token("XLM")


@pytest.fixture
def debt_token():
    return funded_token("USDC", pool=100_000)


@pytest.fixture
def oracle():
    return StaticPriceOracle({"XLM": DEFAULT_PRICE, "USDC": DEFAULT_PRICE})


@pytest.fixture
def cross_ledger(collateral_token, debt_token, oracle):
    """XLM-collateral, USDC-debt ledger at 1:1 prices with full collateral factor."""
    return make_cross_asset_ledger(
        collateral_token, debt_token, oracle,
        risk_config=scenario_risk_config(close_factor_bps=10_000),
        interest_rate_config=zero_rate_config(),
        asset_params={"XLM": AssetParams(collateral_factor_bps=10_000)},
    )
