"""
test_admin_operations.py - Unit tests for administrator operations on LendingLedger
"""

import pytest

from lending import (
    AssetParams, FlashLoanConfig, Operation, SECONDS_PER_YEAR, NATIVE_ASSET,
    Unauthorized, InvalidParameter, ParameterChangeTooLarge, TreasuryNotSet,
    InsufficientReserve, InvalidAmount,
)

from tests.conftest import ADMIN, TREASURY, make_ledger


class TestAuthorization:

    @pytest.mark.parametrize("call", [
        lambda l: l.set_admin("mallory", "mallory"),
        lambda l: l.set_risk_config("mallory", close_factor_bps=5_100),
        lambda l: l.set_pause_switch("mallory", Operation.BORROW, True),
        lambda l: l.set_emergency_pause("mallory", True),
        lambda l: l.update_interest_rate_config("mallory", base_rate_bps=105),
        lambda l: l.set_emergency_adjustment("mallory", 100),
        lambda l: l.set_reserve_factor("mallory", 1_100),
        lambda l: l.set_treasury("mallory", "mallory"),
        lambda l: l.set_asset_params("mallory", NATIVE_ASSET, AssetParams()),
        lambda l: l.set_flash_loan_config("mallory", FlashLoanConfig()),
        lambda l: l.withdraw_reserve_to_treasury("mallory", 1),
    ])
    def test_non_admin_rejected(self, ledger, call):
        with pytest.raises(Unauthorized):
            call(ledger)
        assert ledger.operation_log == []

    def test_set_admin_hands_over_role(self, ledger):
        ledger.set_admin(ADMIN, "new_admin")
        assert ledger.admin == "new_admin"
        with pytest.raises(Unauthorized):
            ledger.set_emergency_pause(ADMIN, True)
        ledger.set_emergency_pause("new_admin", True)

    def test_empty_admin_rejected(self, ledger):
        with pytest.raises(InvalidParameter):
            ledger.set_admin(ADMIN, "")


class TestRiskConfigUpdates:

    def test_update_within_limit(self, ledger):
        ledger.advance_time(77)
        updated = ledger.set_risk_config(ADMIN, close_factor_bps=5_500)
        assert updated.close_factor_bps == 5_500
        assert ledger.risk_config.last_update == 77

    def test_change_too_large(self, ledger):
        with pytest.raises(ParameterChangeTooLarge):
            ledger.set_risk_config(ADMIN, close_factor_bps=7_000)
        assert ledger.risk_config.close_factor_bps == 5_000

    def test_record_emitted(self, ledger):
        ledger.set_risk_config(ADMIN, liquidation_incentive_bps=1_050)
        record = ledger.operation_log[-1]
        assert record.operation == "set_risk_config"
        assert record.amounts == {'liquidation_incentive_bps': 1_050}
        assert record.balances['liquidation_incentive_bps'] == 1_050


class TestInterestRateUpdates:

    def test_update_accrues_at_old_rate_first(self, ledger):
        ledger.deposit("alice", 150)
        ledger.borrow("alice", 100)
        ledger.advance_time(SECONDS_PER_YEAR)
        ledger.update_interest_rate_config(ADMIN, multiplier_bps=2_200)
        # 1766 bps under the old curve
        assert ledger.get_position("alice").accrued_interest == 17
        assert ledger.interest_rate_config.multiplier_bps == 2_200

    def test_update_too_large(self, ledger):
        with pytest.raises(ParameterChangeTooLarge):
            ledger.update_interest_rate_config(ADMIN, multiplier_bps=3_000)

    def test_emergency_adjustment(self, ledger):
        ledger.set_emergency_adjustment(ADMIN, 1_000)
        assert ledger.current_rates()[1] == 1_100

    def test_emergency_adjustment_bound(self, ledger):
        with pytest.raises(InvalidParameter):
            ledger.set_emergency_adjustment(ADMIN, 10_001)


class TestReserveAdministration:

    def test_set_reserve_factor(self, ledger):
        ledger.set_reserve_factor(ADMIN, 2_000)
        assert ledger.get_reserve_factor() == 2_000

    def test_reserve_factor_bound(self, ledger):
        with pytest.raises(InvalidParameter):
            ledger.set_reserve_factor(ADMIN, 5_001)

    def test_withdraw_to_treasury(self, token):
        ledger = make_ledger(token, asset_params={NATIVE_ASSET: AssetParams(borrow_fee_bps=1_000)})
        ledger.deposit("alice", 1_000)
        ledger.borrow("alice", 500)
        assert ledger.get_totals(NATIVE_ASSET).reserve_balance == 50
        remaining = ledger.withdraw_reserve_to_treasury(ADMIN, 30)
        assert remaining == 20
        assert token.balance_of(TREASURY) == 30
        assert ledger.get_totals(NATIVE_ASSET).total_interest_accrued == 50

    def test_withdraw_more_than_reserve(self, ledger):
        with pytest.raises(InsufficientReserve):
            ledger.withdraw_reserve_to_treasury(ADMIN, 1)

    def test_withdraw_requires_treasury(self, token):
        ledger = make_ledger(token, treasury=None)
        with pytest.raises(TreasuryNotSet):
            ledger.withdraw_reserve_to_treasury(ADMIN, 1)

    def test_withdraw_non_positive(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.withdraw_reserve_to_treasury(ADMIN, 0)

    def test_set_treasury(self, token):
        ledger = make_ledger(token, treasury=None)
        ledger.set_treasury(ADMIN, "vault")
        assert ledger.treasury == "vault"
        with pytest.raises(InvalidParameter):
            ledger.set_treasury(ADMIN, "")


class TestAssetAndFlashConfig:

    def test_set_asset_params(self, ledger):
        ledger.set_asset_params(ADMIN, NATIVE_ASSET, AssetParams(max_deposit=10))
        assert ledger.get_asset_params(NATIVE_ASSET).max_deposit == 10

    def test_set_flash_loan_config(self, ledger):
        ledger.set_flash_loan_config(ADMIN, FlashLoanConfig(fee_bps=50))
        assert ledger.flash_loan_config.fee_bps == 50

    def test_invalid_flash_loan_config(self, ledger):
        with pytest.raises(InvalidParameter):
            ledger.set_flash_loan_config(ADMIN, FlashLoanConfig(min_amount=0))

    def test_admin_operations_allowed_while_paused(self, ledger):
        ledger.set_emergency_pause(ADMIN, True)
        ledger.set_reserve_factor(ADMIN, 1_100)
        ledger.set_emergency_pause(ADMIN, False)
        assert not ledger.risk_config.emergency_paused
