"""
Bank Ledger

Ledger core for a single-actor banking demo: session identity, per-account
balances with overdraft protection, append-only transaction history and a
deposit/withdraw/transfer facade, all with Decimal money.
"""

__version__ = "1.0.0"
