"""
Ledger Kernel - double-entry bookkeeping core

A small-business ledger with:
- Template-driven generation of balanced transactions
- Severity-classified validation (block / warn / info)
- Period closing and locking with an audit trail
- Atomic, period-scoped transaction numbering
"""

__version__ = "0.1.0"
