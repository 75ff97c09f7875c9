"""
Sequencing Conformance Tests

INVARIANT: Every successful operation gets the next sequence number.

    sequence_numbers(log) = 0, 1, 2, ..., n-1   (no gaps, no repeats)
    timestamps(log) are non-decreasing
    exec_ids(log) are unique

Rejected operations consume no sequence number. Two ledgers fed the same
operations from the same state produce identical logs and stores.
"""

from hypothesis import given, settings, note

from tests.conformance.operations import (
    operation_sequence, make_conformance_ledger, run_sequence,
)


class TestSequencingProperties:

    @given(operation_sequence())
    @settings(max_examples=80, deadline=None)
    def test_sequence_numbers_are_gap_free(self, steps):
        ledger, token = make_conformance_ledger()
        outcomes = run_sequence(ledger, token, steps)
        note(f"outcomes: {outcomes}")

        log = ledger.operation_log
        assert [r.sequence_number for r in log] == list(range(len(log)))
        assert all(a.timestamp <= b.timestamp for a, b in zip(log, log[1:]))
        assert len({r.exec_id for r in log}) == len(log)

        succeeded = sum(
            1 for step, error in zip(steps, outcomes)
            if error is None and step[0] != "advance"
        )
        # One record for the lender's initial deposit
        assert len(log) == succeeded + 1

    @given(operation_sequence())
    @settings(max_examples=60, deadline=None)
    def test_sinks_see_log_in_order(self, steps):
        ledger, token = make_conformance_ledger()
        received = []
        ledger.subscribe(received.append)
        run_sequence(ledger, token, steps)
        assert received == ledger.operation_log[1:]


class TestDeterminismProperties:

    @given(operation_sequence())
    @settings(max_examples=50, deadline=None)
    def test_identical_sequences_produce_identical_state(self, steps):
        """
        PROPERTY: Two ledgers processing the same steps reach the same state.
        """
        ledger1, token1 = make_conformance_ledger()
        ledger2, token2 = make_conformance_ledger()
        outcomes1 = run_sequence(ledger1, token1, steps)
        outcomes2 = run_sequence(ledger2, token2, steps)

        assert [type(e) for e in outcomes1] == [type(e) for e in outcomes2]
        assert ledger1.snapshot() == ledger2.snapshot()
        assert ledger1.operation_log == ledger2.operation_log
        assert token1.balances == token2.balances

    @given(operation_sequence(max_size=15), operation_sequence(max_size=15))
    @settings(max_examples=40, deadline=None)
    def test_clone_continues_identically(self, prefix, suffix):
        """
        PROPERTY: A clone fed the same later steps matches the original.
        """
        ledger, token = make_conformance_ledger()
        run_sequence(ledger, token, prefix)
        cloned = ledger.clone()
        tokens_at_clone = token.snapshot()

        run_sequence(ledger, token, suffix)
        original_balances = token.snapshot()

        token.restore(tokens_at_clone)
        run_sequence(cloned, token, suffix)

        assert cloned.snapshot() == ledger.snapshot()
        assert cloned.operation_log == ledger.operation_log
        assert token.snapshot() == original_balances
