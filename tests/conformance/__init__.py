"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. solvency.py - No operation leaves a borrower under the minimum ratio
2. conservation.py - Aggregate totals match per-user records and token flows
3. monotonic_interest.py - Accrual only ever adds debt, and only with time
4. liquidation_safety.py - Liquidations are bounded and never worsen a ratio
5. reserve_bounds.py - Reserves never exceed income charged
6. flash_loan_repayment.py - The pool never ends a flash loan short
7. atomicity.py - Rejected operations change nothing
8. sequencing.py - Records are gap-free, ordered and reproducible

These tests use hypothesis for property-based testing. Random operation
sequences come from operations.py.
"""
