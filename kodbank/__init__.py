"""
KodBank Ledger & Session Engine

Session-authenticated customer balances, deposits and transfers with an
append-only transaction log. All money is handled as Decimal and stored
in minor units.
"""

__version__ = "1.0.0"
