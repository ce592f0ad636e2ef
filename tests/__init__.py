"""
Test suite for perp-ledger

Contains:
- tests/unit/          : Unit tests for individual modules and ledger transitions
"""
