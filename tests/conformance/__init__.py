"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateralized-debt engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Custody matches bookkeeping, supply matches debt
2. atomicity.py - All-or-nothing operation semantics
3. solvency.py - No committed operation leaves its account insolvent
4. liquidation_properties.py - Liquidations always help the target
5. valuation_roundtrip.py - Conversions never over-value
6. reentrancy.py - Mutual exclusion of entry points
7. temporal.py - Oracle staleness and the logical clock

These tests use hypothesis for property-based testing.
"""
