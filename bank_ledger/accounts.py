"""
Account Directory Module

Registry of known accounts, used to resolve login names and validate
transfer recipients. The directory is held in memory and bootstrapped from
configuration at process start; it never mutates balances.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import random
import threading
import uuid

from .storage import StorageRecord
from .errors import DuplicateAccountNumberError
from .events import EventDispatcher, DomainEvent, create_account_event
from .schemas import SeedAccount
from .logging_config import get_logger, log_action


SEED_NAMESPACE = uuid.UUID("6f1c1c8e-3d4b-4a57-9a0e-2f5b8d7c9e10")


def seed_account_id(account_number: str) -> str:
    """Stable id for a seeded account so its stored balance survives restarts"""
    return str(uuid.uuid5(SEED_NAMESPACE, account_number))


@dataclass
class Account(StorageRecord):
    """
    Banking identity and financial anchor

    ``id`` and ``account_number`` never change; ``display_name`` and
    ``email`` are profile data the ledger ignores.
    """
    account_number: str
    username: str
    display_name: str
    email: str

    @classmethod
    def create(cls, account_number: str, username: str, display_name: str,
               email: str, account_id: Optional[str] = None) -> 'Account':
        now = datetime.now(timezone.utc)
        return cls(
            id=account_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_number=account_number,
            username=username,
            display_name=display_name,
            email=email
        )


class AccountDirectory:
    """
    Lookup table from account number (and username) to account identity
    """

    def __init__(self, event_dispatcher: Optional[EventDispatcher] = None,
                 rng: Optional[random.Random] = None):
        self._accounts: List[Account] = []
        self._by_number: Dict[str, Account] = {}
        self._by_id: Dict[str, Account] = {}
        self._lock = threading.RLock()
        self._rng = rng or random.SystemRandom()
        self._event_dispatcher = event_dispatcher
        self.logger = get_logger("bank_ledger.accounts")

    def register(self, account: Account) -> Account:
        """
        Add an account to the directory

        Raises:
            DuplicateAccountNumberError: If the account number is already taken
        """
        with self._lock:
            if account.account_number in self._by_number:
                raise DuplicateAccountNumberError(
                    f"Account number {account.account_number} is already registered"
                )
            self._accounts.append(account)
            self._by_number[account.account_number] = account
            self._by_id[account.id] = account

        log_action(
            self.logger, "info", "Account registered",
            account_id=account.id, action="register_account",
            resource=f"account:{account.account_number}"
        )
        if self._event_dispatcher:
            self._event_dispatcher.publish(
                create_account_event(DomainEvent.ACCOUNT_REGISTERED, account)
            )
        return account

    def create_account(self, username: str, display_name: str, email: str,
                       account_number: Optional[str] = None,
                       account_id: Optional[str] = None) -> Account:
        """
        Create and register a new account, generating the account number if needed

        An explicit account number that is taken is rejected; generated
        numbers are redrawn until unique.
        """
        with self._lock:
            if not account_number:
                account_number = self.generate_account_number()
            account = Account.create(
                account_number=account_number,
                username=username,
                display_name=display_name,
                email=email,
                account_id=account_id
            )
            return self.register(account)

    def find_by_account_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        with self._lock:
            return self._by_number.get(account_number)

    def find_by_username(self, username: str) -> Optional[Account]:
        """First registered account with this username"""
        with self._lock:
            for account in self._accounts:
                if account.username == username:
                    return account
            return None

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        with self._lock:
            return self._by_id.get(account_id)

    def list_accounts(self) -> List[Account]:
        """All accounts in registration order"""
        with self._lock:
            return list(self._accounts)

    def replace_profile(self, account: Account) -> None:
        """Swap in an updated profile for an already registered account"""
        with self._lock:
            current = self._by_id.get(account.id)
            if current is None or current.account_number != account.account_number:
                raise ValueError(f"Account {account.id} is not registered")
            index = self._accounts.index(current)
            self._accounts[index] = account
            self._by_number[account.account_number] = account
            self._by_id[account.id] = account

    def generate_account_number(self) -> str:
        """Draw an unused 10-digit account number (no leading zero)"""
        with self._lock:
            while True:
                candidate = str(self._rng.randint(1_000_000_000, 9_999_999_999))
                if candidate not in self._by_number:
                    return candidate

    def seed(self, entries: Iterable[SeedAccount]) -> List[Account]:
        """
        Bootstrap the directory from configuration

        Entries whose account number is already present are skipped with a
        warning, so seeding twice is harmless.
        """
        created = []
        for entry in entries:
            if self.find_by_account_number(entry.account_number):
                self.logger.warning(f"Seed account {entry.account_number} already registered, skipping")
                continue
            created.append(self.create_account(
                username=entry.username,
                display_name=entry.display_name,
                email=entry.email,
                account_number=entry.account_number,
                account_id=seed_account_id(entry.account_number)
            ))
        self.logger.info(f"Seeded directory with {len(created)} accounts")
        return created

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)
