#!/usr/bin/env python3
"""
Bank Ledger Demo Entry Point

Boots the ledger core from configuration, logs the demo user in and walks
through a deposit, a withdrawal and a transfer to a seeded account.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from bank_ledger.config import get_config
from bank_ledger.logging_config import setup_logging
from bank_ledger.system import BankingSystem


def main() -> int:
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    system = BankingSystem(config)
    try:
        login = system.identity.authenticate("testuser", "password123")
        if not login.ok:
            print(f"Login failed: {login.message}")
            return 1

        ctx = system.identity.context()
        ops = system.operations
        print(f"Logged in as {ctx.actor.display_name} ({ctx.actor.account_number})")
        print(f"Opening balance: {ops.balance(ctx).to_string()}")

        for result in (
            ops.deposit(ctx, "250.50", "Paycheck"),
            ops.withdraw(ctx, "2000", "Rent"),
            ops.transfer(ctx, "100", "0987654321", "Gift"),
        ):
            status = "ok" if result.ok else f"failed ({result.error.value})"
            print(f"{result.message}: {status}")

        print(f"Closing balance: {ops.balance(ctx).to_string()}")
        for transaction in ops.list_transactions(ctx):
            print(
                f"  {transaction.timestamp:%Y-%m-%d %H:%M:%S} {transaction.kind.value:<8} "
                f"{transaction.amount.to_string():>14} -> {transaction.resulting_balance.to_string()}"
                f"  {transaction.description}"
            )
        return 0
    finally:
        system.close()


if __name__ == "__main__":
    sys.exit(main())
