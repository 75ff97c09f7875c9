"""
test_lending_lifecycle.py - Multi-user lending flows over time

Walks a pool through deposits, borrows, a year of interest, repayments,
reserve withdrawal and full exit, checking balances and conservation at
each step.
"""

import pytest

from lending import (
    Position, SECONDS_PER_YEAR, SECONDS_PER_DAY, NATIVE_ASSET,
    InsufficientCollateralRatio,
)

from tests.conftest import ADMIN, TREASURY, make_ledger, scenario_risk_config


@pytest.fixture
def pool(token):
    ledger = make_ledger(token, risk_config=scenario_risk_config())
    ledger.deposit("lp", 100_000)
    ledger.deposit("alice", 3_000)
    ledger.deposit("bob", 6_000)
    ledger.borrow("alice", 2_000)
    ledger.borrow("bob", 4_000)
    return ledger


class TestLifecycle:

    def test_utilization_and_rates(self, pool):
        utilization, borrow_rate, supply_rate = pool.current_rates()
        # 6000 / 109000
        assert utilization == 550
        assert borrow_rate == 100 + 550 * 2_000 // 8_000
        # 237 - 200 is below the 50 bps floor
        assert supply_rate == 50

    def test_interest_accrues_for_every_borrower(self, pool):
        pool.advance_time(SECONDS_PER_YEAR)
        added = pool.accrue_interest()
        alice = pool.get_position("alice")
        bob = pool.get_position("bob")
        assert alice.accrued_interest > 0
        assert bob.accrued_interest == 2 * alice.accrued_interest
        assert added == alice.accrued_interest + bob.accrued_interest
        totals = pool.get_totals(NATIVE_ASSET)
        assert totals.total_borrows == 6_000 + added
        assert totals.total_interest_accrued == added
        assert pool.verify_conservation()['valid']

    def test_interest_makes_borrow_capacity_shrink(self, pool):
        pool.repay("alice", 1_000)
        capacity_before = pool.max_borrowable("alice")
        assert capacity_before == 1_000
        pool.advance_time(SECONDS_PER_YEAR)
        assert pool.max_borrowable("alice") < capacity_before

    def test_accrual_at_boundary_blocks_withdraw(self, pool):
        """At exactly 150%, any accrued interest blocks further withdrawal."""
        pool.advance_time(30 * SECONDS_PER_DAY)
        with pytest.raises(InsufficientCollateralRatio):
            pool.withdraw("alice", 1)

    def test_full_exit(self, pool, token):
        pool.advance_time(SECONDS_PER_YEAR)
        for user in ("alice", "bob"):
            owed = pool.preview_position(user).total_debt
            result = pool.repay(user, owed)
            assert result.remaining_debt == 0
            collateral = pool.get_position(user).collateral
            pool.withdraw(user, collateral)
            assert pool.get_position(user).is_empty

        totals = pool.get_totals(NATIVE_ASSET)
        assert totals.total_borrows == 0
        assert totals.total_collateral == 100_000
        assert totals.reserve_balance > 0

        reserve = totals.reserve_balance
        pool.withdraw_reserve_to_treasury(ADMIN, reserve)
        assert token.balance_of(TREASURY) == reserve
        assert pool.get_totals(NATIVE_ASSET).reserve_balance == 0

        # Lender exits with principal plus the lender share of interest left in the pool
        pool.withdraw("lp", 100_000)
        assert token.balance_of("pool") == totals.total_interest_accrued - reserve
        assert pool.verify_conservation()['valid']

    def test_position_cleared_after_repay_resets_clock(self, pool):
        pool.advance_time(SECONDS_PER_YEAR)
        owed = pool.preview_position("alice").total_debt
        pool.repay("alice", owed)
        pool.advance_time(2 * SECONDS_PER_YEAR)
        pool.accrue_interest()
        position = pool.get_position("alice")
        assert position == Position(collateral=3_000, last_accrual_time=2 * SECONDS_PER_YEAR)

    def test_operation_log_is_complete(self, pool):
        assert [r.operation for r in pool.operation_log] == [
            "deposit", "deposit", "deposit", "borrow", "borrow",
        ]
        assert [r.sequence_number for r in pool.operation_log] == list(range(5))

    def test_activity_counters(self, pool):
        pool.repay("alice", 500)
        activity = pool.get_activity("alice")
        assert activity.total_deposits == 3_000
        assert activity.total_borrows == 2_000
        assert activity.total_repayments == 500
        assert activity.operation_count == 3
