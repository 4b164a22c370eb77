"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Failed operations change nothing
2. conservation.py - Coins are neither created nor destroyed by the engine
3. idempotency.py - Repeated registration, initialization and repayment
4. determinism.py - Identical operation sequences give identical state
5. temporal.py - Logical time, due dates and journal ordering
6. invariants.py - Cross-ledger invariants under random operation sequences

These tests use hypothesis for property-based testing.
"""
