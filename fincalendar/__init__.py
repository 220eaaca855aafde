"""
FinCalendar - Source Package

A personal finance ledger built around savings envelopes (funds),
bills (obligations), income/expense transactions and allocations.

DESIGN PRINCIPLES:
1. Balances are derived from records, never cached
2. Validate everything before writing anything
3. No silent corrections: every rejection names its cause
4. Every mutation is auditable
5. Storage is swappable
"""

__version__ = "1.0.0"
__author__ = "FinCalendar Team"
