"""
test_collateral.py - Unit tests for collateral valuation and solvency guards
"""

import pytest
from hypothesis import given, assume, strategies as st

from lending import (
    Position, RiskConfig,
    InsufficientCollateral, InsufficientCollateralRatio, MaxBorrowExceeded,
    calculate_collateral_value, calculate_collateral_ratio, calculate_max_borrowable,
    position_ratio, check_borrow, check_withdraw,
)


MCR_150 = RiskConfig(min_collateral_ratio_bps=15_000, liquidation_threshold_bps=10_000)


class TestValuation:

    def test_same_asset_ignores_factor(self):
        assert calculate_collateral_value(100, 5_000, same_asset=True) == 100

    def test_cross_asset_applies_factor(self):
        assert calculate_collateral_value(100, 7_500, same_asset=False) == 75

    def test_ratio(self):
        assert calculate_collateral_ratio(150, 100) == 15_000

    def test_ratio_without_debt_is_none(self):
        assert calculate_collateral_ratio(150, 0) is None

    def test_max_borrowable(self):
        assert calculate_max_borrowable(150, 0, MCR_150) == 100
        assert calculate_max_borrowable(150, 40, MCR_150) == 60

    def test_max_borrowable_floored_at_zero(self):
        assert calculate_max_borrowable(150, 200, MCR_150) == 0

    def test_position_ratio_includes_interest(self):
        p = Position(collateral=150, debt=90, accrued_interest=10)
        assert position_ratio(p, 10_000, True) == 15_000


class TestCheckBorrow:
    """Order: collateral exists, resulting ratio, max borrowable."""

    def test_exact_boundary_allowed(self):
        check_borrow(Position(collateral=150), 100, MCR_150, 10_000, True)

    def test_no_collateral(self):
        with pytest.raises(InsufficientCollateral):
            check_borrow(Position(), 1, MCR_150, 10_000, True)

    def test_ratio_checked_first(self):
        with pytest.raises(InsufficientCollateralRatio):
            check_borrow(Position(collateral=150, debt=100), 70, MCR_150, 10_000, True)

    def test_interest_counts_toward_debt(self):
        p = Position(collateral=150, debt=99, accrued_interest=1)
        with pytest.raises(InsufficientCollateralRatio):
            check_borrow(p, 1, MCR_150, 10_000, True)

    def test_cross_asset_factor(self):
        p = Position(collateral=200)
        check_borrow(p, 100, MCR_150, 7_500, False)
        with pytest.raises(InsufficientCollateralRatio):
            check_borrow(p, 101, MCR_150, 7_500, False)

    @given(st.integers(1, 10**12), st.integers(0, 10**12), st.integers(1, 10**12))
    def test_success_implies_min_ratio(self, collateral, debt, amount):
        p = Position(collateral=collateral, debt=debt)
        try:
            check_borrow(p, amount, MCR_150, 10_000, True)
        except (InsufficientCollateralRatio, MaxBorrowExceeded):
            return
        assert calculate_collateral_ratio(collateral, debt + amount) >= 15_000


class TestCheckWithdraw:

    def test_without_debt_any_amount_up_to_collateral(self):
        check_withdraw(Position(collateral=100), 100, MCR_150, 10_000, True)

    def test_more_than_collateral(self):
        with pytest.raises(InsufficientCollateral):
            check_withdraw(Position(collateral=100), 101, MCR_150, 10_000, True)

    def test_boundary_with_debt(self):
        p = Position(collateral=200, debt=100)
        check_withdraw(p, 50, MCR_150, 10_000, True)
        with pytest.raises(InsufficientCollateralRatio):
            check_withdraw(p, 51, MCR_150, 10_000, True)

    @given(st.integers(1, 10**12), st.integers(1, 10**12), st.integers(1, 10**12))
    def test_success_implies_min_ratio(self, collateral, debt, amount):
        assume(amount <= collateral)
        p = Position(collateral=collateral, debt=debt)
        try:
            check_withdraw(p, amount, MCR_150, 10_000, True)
        except InsufficientCollateralRatio:
            return
        assert calculate_collateral_ratio(collateral - amount, debt) >= 15_000
