"""
Monotonic Interest Conformance Tests

INVARIANT: Interest accrual only ever adds debt, and only when time passes.

    ∀ t1 ≤ t2, rate ≥ 0:
        interest(p, rate, t1, t2) ≥ 0
        interest(p, rate, t, t) = 0
        total_debt(u) after accrual ≥ total_debt(u) before
        total_interest_accrued never decreases

Repayments and liquidations reduce debt; accrual never does.
"""

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from lending import (
    Position, SECONDS_PER_YEAR, NATIVE_ASSET,
    accrue, calculate_accrued_interest,
)

from tests.conformance.operations import (
    operation_sequence, operation_step, make_conformance_ledger, apply_step,
)


principals = st.integers(min_value=0, max_value=10**15)
rates = st.integers(min_value=0, max_value=20_000)
times = st.integers(min_value=0, max_value=10 * SECONDS_PER_YEAR)

# Steps that cannot reduce anyone's debt
non_reducing_steps = operation_step().filter(
    lambda step: step[0] in ("deposit", "borrow", "borrow_max", "advance", "accrue", "flash_loan")
)


class TestAccrualProperties:
    """Property-based tests on the pure accrual functions."""

    @given(principals, rates, times, times)
    @settings(max_examples=200)
    def test_interest_non_negative(self, principal, rate, t1, t2):
        assume(t1 <= t2)
        assert calculate_accrued_interest(principal, rate, t1, t2) >= 0

    @given(principals, rates, times)
    @settings(max_examples=100)
    def test_no_interest_without_elapsed_time(self, principal, rate, t):
        assert calculate_accrued_interest(principal, rate, t, t) == 0

    @given(principals, rates, times, times, times)
    @settings(max_examples=200)
    def test_interest_grows_with_elapsed_time(self, principal, rate, t0, t1, t2):
        assume(t0 <= t1 <= t2)
        shorter = calculate_accrued_interest(principal, rate, t0, t1)
        longer = calculate_accrued_interest(principal, rate, t0, t2)
        assert longer >= shorter

    @given(principals, rates, rates, times)
    @settings(max_examples=200)
    def test_interest_grows_with_rate(self, principal, rate_a, rate_b, elapsed):
        low, high = sorted((rate_a, rate_b))
        assert (
            calculate_accrued_interest(principal, high, 0, elapsed)
            >= calculate_accrued_interest(principal, low, 0, elapsed)
        )

    @given(
        st.integers(min_value=1, max_value=10**12),
        rates,
        st.integers(min_value=0, max_value=10**6),
        times,
    )
    @settings(max_examples=200)
    def test_accrue_never_lowers_debt(self, debt, rate, interest, elapsed):
        position = Position(collateral=0, debt=debt, accrued_interest=interest, last_accrual_time=0)
        updated, added = accrue(position, rate, elapsed)
        assert updated.total_debt == position.total_debt + added
        assert updated.total_debt >= position.total_debt

    @given(st.integers(min_value=1, max_value=10**12), rates, times)
    @settings(max_examples=100)
    def test_accrue_is_idempotent_at_fixed_time(self, debt, rate, now):
        position = Position(debt=debt, last_accrual_time=0)
        once, _ = accrue(position, rate, now)
        twice, added = accrue(once, rate, now)
        assert twice == once
        assert added == 0


class TestLedgerAccrualProperties:
    """Property-based tests on ledger-level accrual."""

    @given(st.lists(non_reducing_steps, min_size=1, max_size=25))
    @settings(max_examples=60, deadline=None)
    def test_debt_never_decreases_without_repayment(self, steps):
        """
        PROPERTY: With no repay or liquidate steps, every user's debt only grows.
        """
        ledger, token = make_conformance_ledger()
        previous = {}
        for step in steps:
            apply_step(ledger, token, step)
            for user in ledger.list_users():
                debt = ledger.get_position(user).total_debt
                assert debt >= previous.get(user, 0)
                previous[user] = debt

    @given(operation_sequence())
    @settings(max_examples=60, deadline=None)
    def test_interest_income_never_decreases(self, steps):
        """
        PROPERTY: total_interest_accrued is non-decreasing over any sequence.
        """
        ledger, token = make_conformance_ledger()
        charged = 0
        for step in steps:
            apply_step(ledger, token, step)
            current = ledger.get_totals(NATIVE_ASSET).total_interest_accrued
            assert current >= charged
            charged = current

    @given(operation_sequence(max_size=15))
    @settings(max_examples=40, deadline=None)
    def test_second_accrual_adds_nothing(self, steps):
        """
        PROPERTY: accrue_interest() twice at the same time adds interest once.
        """
        ledger, token = make_conformance_ledger()
        for step in steps:
            apply_step(ledger, token, step)
        ledger.accrue_interest()
        before = ledger.snapshot()
        assert ledger.accrue_interest() == 0
        assert ledger.snapshot() == before
