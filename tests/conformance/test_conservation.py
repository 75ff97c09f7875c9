"""
Conservation Law Conformance Tests

INVARIANT: Aggregate totals agree with per-user records, and tokens are
only ever moved, never created or destroyed.

    total_collateral = Σ_u collateral(u)
    |total_borrows - Σ_u total_debt(u)| ≤ number of users
    pool_balance + Σ_u principal(u) ≥ total_collateral + reserve_balance
    Σ_accounts token_balance = constant

The third law says the pool plus what is lent out always covers every
deposit and the protocol's reserves.
"""

from hypothesis import given, settings, note

from lending import NATIVE_ASSET

from tests.conformance.operations import operation_sequence, make_conformance_ledger, apply_step


def pool_coverage(ledger, token):
    """(assets, claims) for the pool coverage law."""
    totals = ledger.get_totals(NATIVE_ASSET)
    principal = sum(ledger.get_position(u).debt for u in ledger.list_users())
    assets = token.balance_of(ledger.pool_account) + principal
    claims = totals.total_collateral + totals.reserve_balance
    return assets, claims


class TestConservationProperties:
    """Property-based tests for the conservation laws."""

    @given(operation_sequence())
    @settings(max_examples=80, deadline=None)
    def test_totals_match_positions(self, steps):
        """
        PROPERTY: verify_conservation() holds after every step.
        """
        ledger, token = make_conformance_ledger()
        for step in steps:
            error = apply_step(ledger, token, step)
            note(f"{step} -> {error!r}")
            result = ledger.verify_conservation()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"

    @given(operation_sequence())
    @settings(max_examples=80, deadline=None)
    def test_token_supply_constant(self, steps):
        """
        PROPERTY: No operation changes the total token supply.
        """
        ledger, token = make_conformance_ledger()
        initial_supply = token.total_supply
        for step in steps:
            apply_step(ledger, token, step)
            assert token.total_supply == initial_supply

    @given(operation_sequence())
    @settings(max_examples=80, deadline=None)
    def test_pool_covers_deposits_and_reserves(self, steps):
        """
        PROPERTY: pool balance + lent principal ≥ deposits + reserves.
        """
        ledger, token = make_conformance_ledger()
        for step in steps:
            error = apply_step(ledger, token, step)
            note(f"{step} -> {error!r}")
            assets, claims = pool_coverage(ledger, token)
            assert assets >= claims, f"pool short: {assets} < {claims}"


class TestConservationExamples:
    """Explicit example-based conservation tests."""

    def test_deposit_borrow_repay_withdraw(self):
        ledger, token = make_conformance_ledger()
        ledger.deposit("alice", 1_500)
        ledger.borrow("alice", 1_000)
        ledger.advance_time(ledger.current_time + 86_400 * 90)
        owed = ledger.preview_position("alice").total_debt
        ledger.repay("alice", owed)
        ledger.withdraw("alice", 1_500)

        assert ledger.verify_conservation()['valid']
        assets, claims = pool_coverage(ledger, token)
        assert assets >= claims
        # Everything above deposits and reserves is the lenders' share of interest
        totals = ledger.get_totals(NATIVE_ASSET)
        assert assets - claims == totals.total_interest_accrued - totals.reserve_balance
