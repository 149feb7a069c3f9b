"""
Balance Ledger

Single source of truth for each account's balance. Balances are stored as
integer minor units keyed by account id; an account with no stored balance
reads as the configured starting balance, never as zero.

``apply`` is the only path that changes a balance. Its read-validate-write
step runs inside a per-account re-entrant lock, so two debits racing on the
same account cannot both pass the funds check against a stale balance.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator
import threading

from .currency import Money, Currency
from .storage import StorageInterface
from .errors import InvalidAmountError, InsufficientFundsError, CorruptRecordError
from .events import Signal
from .logging_config import get_logger, log_action


class Direction(Enum):
    """Direction of a balance mutation"""
    CREDIT = "credit"  # Increases the balance
    DEBIT = "debit"    # Decreases the balance


class BalanceLedger:
    """
    Per-account balance store with check-then-mutate critical sections
    """

    def __init__(
        self,
        storage: StorageInterface,
        currency: Currency,
        starting_balance: Money,
        table_name: str = "balances"
    ):
        if starting_balance.currency != currency:
            raise ValueError("Starting balance currency must match ledger currency")
        if starting_balance.is_negative():
            raise ValueError("Starting balance cannot be negative")

        self.storage = storage
        self.currency = currency
        self.starting_balance = starting_balance
        self.table_name = table_name
        self.logger = get_logger("bank_ledger.ledger")

        self._locks: Dict[str, threading.RLock] = {}
        self._signals: Dict[str, Signal[Money]] = {}
        self._registry_lock = threading.Lock()
        self._version = 0

    def account_lock(self, account_id: str) -> threading.RLock:
        """The re-entrant lock guarding one account's balance"""
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def locked(self, *account_ids: str) -> Iterator[None]:
        """Hold several account locks at once, acquired in a fixed order"""
        locks = [self.account_lock(account_id) for account_id in sorted(set(account_ids))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()

    def read(self, account_id: str) -> Money:
        """
        Current balance of an account

        Missing balances read as the starting balance. An unreadable stored
        balance is logged and also degrades to the starting balance.
        """
        try:
            data = self.storage.load(self.table_name, account_id)
        except CorruptRecordError as e:
            self.logger.error(f"Unreadable balance for {account_id}, using starting balance: {e}")
            return self.starting_balance

        if data is None:
            return self.starting_balance

        try:
            return self._balance_from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            self.logger.error(f"Corrupt balance record for {account_id}, using starting balance: {e}")
            return self.starting_balance

    def apply(
        self,
        account_id: str,
        amount: Money,
        direction: Direction,
        notify: bool = True
    ) -> Money:
        """
        Credit or debit an account

        Args:
            account_id: Account to mutate
            amount: Positive magnitude of the change
            direction: CREDIT or DEBIT
            notify: Publish the new balance on the account's signal. Callers
                that wrap ``apply`` in a wider storage transaction pass False
                and call ``notify`` once that transaction commits.

        Returns:
            The balance after the mutation

        Raises:
            InvalidAmountError: If amount is not positive or in another currency
            InsufficientFundsError: If a debit exceeds the current balance
        """
        if amount.currency != self.currency:
            raise InvalidAmountError(
                f"Amount currency {amount.currency.code} does not match ledger currency {self.currency.code}"
            )
        if not amount.is_positive():
            raise InvalidAmountError("Amount must be greater than 0")

        with self.account_lock(account_id):
            current = self.read(account_id)

            if direction == Direction.DEBIT:
                if amount > current:
                    raise InsufficientFundsError("Insufficient balance")
                new_balance = current - amount
            else:
                new_balance = current + amount

            with self.storage.atomic():
                self._write(account_id, new_balance)

        log_action(
            self.logger, "debug", f"Balance {direction.value} applied",
            account_id=account_id, action=f"balance_{direction.value}",
            resource=f"balance:{account_id}",
            extra={
                "amount": amount.to_string(),
                "previous_balance": current.to_string(),
                "new_balance": new_balance.to_string()
            }
        )

        if notify:
            self.notify(account_id)
        return new_balance

    def balance_signal(self, account_id: str) -> Signal[Money]:
        """Retained-value stream of an account's balance"""
        with self._registry_lock:
            signal = self._signals.get(account_id)
            if signal is not None:
                return signal
        initial = self.read(account_id)
        with self._registry_lock:
            # Another thread may have created it meanwhile
            signal = self._signals.setdefault(account_id, Signal(initial, name=f"balance:{account_id}"))
        return signal

    def notify(self, account_id: str) -> None:
        """Publish the committed balance of an account to its signal"""
        with self.account_lock(account_id):
            balance = self.read(account_id)
            with self._registry_lock:
                self._version += 1
                version = self._version
        self.balance_signal(account_id).publish(balance, sequence=version)

    def _write(self, account_id: str, balance: Money) -> None:
        if balance.is_negative():
            raise InsufficientFundsError("Balance cannot go negative")
        self.storage.save(self.table_name, account_id, {
            "account_id": account_id,
            "balance_minor": balance.to_minor_units(),
            "currency": balance.currency.code,
            "updated_at": datetime.now(timezone.utc).isoformat()
        })

    def _balance_from_dict(self, data: Dict) -> Money:
        minor = data["balance_minor"]
        if isinstance(minor, bool) or not isinstance(minor, int):
            raise TypeError(f"balance_minor must be an integer, got {minor!r}")
        currency = Currency[data["currency"]]
        if currency != self.currency:
            raise ValueError(f"Stored currency {currency.code} does not match ledger currency")
        if minor < 0:
            raise ValueError(f"Stored balance is negative: {minor}")
        return Money.from_minor_units(minor, currency)
