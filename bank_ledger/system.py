"""
Ledger system bootstrap

Builds storage, directory, identity store, ledger, transaction log and the
operation facade from a LedgerConfig, and seeds the account directory.
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional

from .config import LedgerConfig, get_config
from .currency import Money, Currency
from .storage import StorageInterface, InMemoryStorage, SQLiteStorage
from .events import EventDispatcher
from .accounts import AccountDirectory
from .identity import IdentityStore
from .ledger import BalanceLedger
from .transaction_log import TransactionLog
from .operations import BankingOperations
from .logging_config import get_logger


def create_storage(config: LedgerConfig) -> StorageInterface:
    """Storage backend selected by ``config.storage_backend``"""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(Path(config.sqlite_path))
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


class BankingSystem:
    """Ledger core with all components initialized"""

    def __init__(self, config: Optional[LedgerConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.logger = get_logger("bank_ledger.system")

        currency = Currency[self.config.currency.upper()]
        self.currency = currency

        # Initialize storage
        self.storage = storage or create_storage(self.config)
        self.events = EventDispatcher()

        # Directory comes first so the identity store can resolve a restored session
        self.directory = AccountDirectory(event_dispatcher=self.events)
        self.directory.seed(self.config.seed_accounts)

        self.identity = IdentityStore(
            self.storage, self.directory,
            password_min_length=self.config.password_min_length,
            event_dispatcher=self.events
        )
        self.ledger = BalanceLedger(
            self.storage, currency,
            starting_balance=Money(Decimal(self.config.starting_balance), currency)
        )
        self.transaction_log = TransactionLog(self.storage, currency)

        max_amount = None
        if self.config.max_transaction_amount:
            max_amount = Money(Decimal(self.config.max_transaction_amount), currency)

        self.operations = BankingOperations(
            self.storage, self.ledger, self.transaction_log, self.directory,
            max_transaction_amount=max_amount,
            credit_transfer_recipient=self.config.credit_transfer_recipient,
            event_dispatcher=self.events
        )

        self.logger.info(
            f"Ledger system ready: backend={self.config.storage_backend}, "
            f"currency={currency.code}, accounts={len(self.directory)}"
        )

    def close(self) -> None:
        """Close storage backend"""
        self.storage.close()
