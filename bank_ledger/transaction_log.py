"""
Transaction Log Module

Append-only, most-recent-first history of ledger-affecting events for each
account. Every entry snapshots the balance right after its event committed;
snapshots are never recomputed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import threading
import time
import uuid

from .currency import Money, Currency
from .storage import StorageInterface
from .errors import CorruptRecordError
from .logging_config import get_logger, log_action


class TransactionKind(Enum):
    """Kinds of ledger events"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class Transaction:
    """
    Immutable record of one committed ledger event
    """
    id: str
    kind: TransactionKind
    amount: Money
    description: str
    timestamp: datetime
    resulting_balance: Money
    counterparty_from: Optional[str] = None
    counterparty_to: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Transaction amount must be positive")
        if self.amount.currency != self.resulting_balance.currency:
            raise ValueError("Transaction amount and resulting balance must share a currency")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "amount_minor": self.amount.to_minor_units(),
            "currency": self.amount.currency.code,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "resulting_balance_minor": self.resulting_balance.to_minor_units(),
            "counterparty_from": self.counterparty_from,
            "counterparty_to": self.counterparty_to
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        currency = Currency[data["currency"]]
        return cls(
            id=str(data["id"]),
            kind=TransactionKind(data["kind"]),
            amount=Money.from_minor_units(int(data["amount_minor"]), currency),
            description=str(data["description"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            resulting_balance=Money.from_minor_units(int(data["resulting_balance_minor"]), currency),
            counterparty_from=data.get("counterparty_from"),
            counterparty_to=data.get("counterparty_to")
        )


@dataclass
class AccountSummary:
    """Per-kind totals and the most recent entries of an account's history"""
    total_deposits: Money
    total_withdrawals: Money
    total_transfers: Money
    transaction_count: int
    recent: List[Transaction] = field(default_factory=list)


class _TransactionIdGenerator:
    """Time-based ids that strictly increase within the process"""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            stamp = max(time.time_ns(), self._last + 1)
            self._last = stamp
        return f"{stamp}{uuid.uuid4().hex[:6]}"


class TransactionLog:
    """
    Per-account append-only history stored as one list per account id

    The head of the stored list is the newest entry. No update or delete
    operation exists.
    """

    def __init__(self, storage: StorageInterface, currency: Currency,
                 table_name: str = "transaction_logs"):
        self.storage = storage
        self.currency = currency
        self.table_name = table_name
        self.logger = get_logger("bank_ledger.transaction_log")
        self._ids = _TransactionIdGenerator()
        self._lock = threading.RLock()

    def append(
        self,
        account_id: str,
        kind: TransactionKind,
        amount: Money,
        description: str,
        resulting_balance: Money,
        counterparty_from: Optional[str] = None,
        counterparty_to: Optional[str] = None
    ) -> Transaction:
        """
        Record a committed ledger event at the head of the account's log

        Returns:
            The created Transaction
        """
        if kind != TransactionKind.TRANSFER and (counterparty_from or counterparty_to):
            raise ValueError("Only transfers carry counterparties")

        transaction = Transaction(
            id=self._ids.next_id(),
            kind=kind,
            amount=amount,
            description=description,
            timestamp=datetime.now(timezone.utc),
            resulting_balance=resulting_balance,
            counterparty_from=counterparty_from,
            counterparty_to=counterparty_to
        )

        with self._lock, self.storage.atomic():
            entries, discarded, unreadable = self._load_log(account_id)
            if unreadable:
                # Unreadable data is kept beside the rebuilt list, never overwritten
                self.logger.warning(
                    f"Moving {len(unreadable)} unreadable item(s) of the {account_id} log "
                    f"under 'discarded': {unreadable!r}"
                )
                discarded = discarded + unreadable
            entries.insert(0, transaction.to_dict())
            record: Dict[str, Any] = {"account_id": account_id, "entries": entries}
            if discarded:
                record["discarded"] = discarded
            self.storage.save(self.table_name, account_id, record)

        log_action(
            self.logger, "info", f"Transaction appended: {kind.value}",
            account_id=account_id, action="append_transaction",
            resource=f"transaction:{transaction.id}",
            extra={
                "kind": kind.value,
                "amount": amount.to_string(),
                "resulting_balance": resulting_balance.to_string(),
                "counterparty_to": counterparty_to
            }
        )
        return transaction

    def list(self, account_id: str) -> List[Transaction]:
        """
        Full history of an account, most recent first

        Every call re-reads storage; no cursor state is kept. Entries that
        cannot be decoded are skipped.
        """
        transactions = []
        entries, _, _ = self._load_log(account_id)
        for entry in entries:
            try:
                transactions.append(Transaction.from_dict(entry))
            except (KeyError, ValueError, TypeError) as e:
                self.logger.error(f"Skipping unreadable transaction in {account_id} log: {e}")
        return transactions

    def summarize(self, account_id: str, recent: int = 5) -> AccountSummary:
        """Totals per kind plus the ``recent`` newest transactions"""
        transactions = self.list(account_id)
        totals = {kind: Money.zero(self.currency) for kind in TransactionKind}
        for transaction in transactions:
            totals[transaction.kind] = totals[transaction.kind] + transaction.amount

        return AccountSummary(
            total_deposits=totals[TransactionKind.DEPOSIT],
            total_withdrawals=totals[TransactionKind.WITHDRAW],
            total_transfers=totals[TransactionKind.TRANSFER],
            transaction_count=len(transactions),
            recent=transactions[:max(recent, 0)]
        )

    def _load_log(self, account_id: str) -> Tuple[List[Dict[str, Any]], List[Any], List[Any]]:
        """
        Split an account's stored log into readable entries, unreadable data
        kept by earlier appends and unreadable data found by this read
        """
        try:
            data = self.storage.load(self.table_name, account_id)
        except CorruptRecordError as e:
            self.logger.error(f"Unreadable transaction log for {account_id}, treating as empty: {e}")
            return [], [], [str(e)]

        if data is None:
            return [], [], []

        discarded = data.get("discarded") or []
        if not isinstance(discarded, list):
            discarded = [discarded]

        entries = data.get("entries")
        if not isinstance(entries, list):
            self.logger.error(f"Corrupt transaction log for {account_id}, treating as empty")
            return [], discarded, [entries if "entries" in data else data]

        readable = [entry for entry in entries if isinstance(entry, dict)]
        unreadable = [entry for entry in entries if not isinstance(entry, dict)]
        return readable, discarded, unreadable
