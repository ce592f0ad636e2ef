"""
Core domain models, fixed-point primitives, and invariants.

This module contains the foundational building blocks of the ledger that are
independent of storage, oracles and notification transports.
"""
