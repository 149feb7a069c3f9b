"""
Tests for the account directory
"""

import pytest
import random
from unittest.mock import Mock

from bank_ledger.accounts import Account, AccountDirectory, seed_account_id
from bank_ledger.config import DEFAULT_SEED_ACCOUNTS
from bank_ledger.errors import DuplicateAccountNumberError
from bank_ledger.events import EventDispatcher, DomainEvent


class TestAccountDirectory:

    def setup_method(self):
        self.events = EventDispatcher()
        self.directory = AccountDirectory(event_dispatcher=self.events, rng=random.Random(42))

    def test_create_and_find(self):
        """Test account creation and lookup by number, username and id"""
        account = self.directory.create_account(
            username="alice",
            display_name="Alice",
            email="alice@example.com",
            account_number="1111111111"
        )

        assert self.directory.find_by_account_number("1111111111") is account
        assert self.directory.find_by_username("alice") is account
        assert self.directory.get_account(account.id) is account
        assert self.directory.find_by_account_number("2222222222") is None
        assert self.directory.find_by_username("nobody") is None
        assert len(self.directory) == 1

    def test_duplicate_account_number_rejected(self):
        """Test an explicit account number cannot be registered twice"""
        self.directory.create_account("alice", "Alice", "alice@example.com", account_number="1111111111")

        with pytest.raises(DuplicateAccountNumberError):
            self.directory.create_account("bob", "Bob", "bob@example.com", account_number="1111111111")
        assert len(self.directory) == 1

    def test_generated_numbers_are_unique_ten_digits(self):
        """Test generated account numbers are unique 10-digit strings"""
        numbers = {
            self.directory.create_account(f"user{i}", f"User {i}", f"user{i}@example.com").account_number
            for i in range(50)
        }

        assert len(numbers) == 50
        for number in numbers:
            assert len(number) == 10
            assert number.isdigit()
            assert not number.startswith("0")

    def test_generation_redraws_taken_numbers(self):
        """Test number generation redraws on collision"""
        rng = Mock()
        rng.randint.side_effect = [1111111111, 1111111111, 2222222222]
        directory = AccountDirectory(rng=rng)
        directory.create_account("alice", "Alice", "alice@example.com", account_number="1111111111")

        assert directory.generate_account_number() == "2222222222"
        assert rng.randint.call_count == 3

    def test_username_lookup_returns_first_match(self):
        """Test username lookup returns the first registered account"""
        first = self.directory.create_account("shared", "First", "first@example.com")
        self.directory.create_account("shared", "Second", "second@example.com")

        assert self.directory.find_by_username("shared") is first

    def test_seed_is_idempotent_with_stable_ids(self):
        """Test seeding twice is harmless and ids are stable"""
        created = self.directory.seed(DEFAULT_SEED_ACCOUNTS)
        again = self.directory.seed(DEFAULT_SEED_ACCOUNTS)

        assert len(created) == 2
        assert again == []
        johndoe = self.directory.find_by_account_number("0987654321")
        assert johndoe.username == "johndoe"
        assert johndoe.id == seed_account_id("0987654321")
        assert seed_account_id("0987654321") == AccountDirectory().seed(DEFAULT_SEED_ACCOUNTS)[1].id

    def test_register_publishes_event(self):
        """Test registration publishes an account event"""
        handler = Mock()
        self.events.subscribe(DomainEvent.ACCOUNT_REGISTERED, handler)

        account = self.directory.create_account("alice", "Alice", "alice@example.com")

        event = handler.call_args[0][0]
        assert event.entity_id == account.id
        assert event.data["account_number"] == account.account_number

    def test_replace_profile(self):
        """Test profile replacement for registered accounts only"""
        account = self.directory.create_account("alice", "Alice", "alice@example.com", account_number="1111111111")
        updated = Account(
            id=account.id,
            created_at=account.created_at,
            updated_at=account.updated_at,
            account_number=account.account_number,
            username=account.username,
            display_name="Alice Smith",
            email=account.email
        )

        self.directory.replace_profile(updated)

        assert self.directory.find_by_account_number("1111111111").display_name == "Alice Smith"
        assert self.directory.list_accounts() == [updated]

        stranger = Account.create("3333333333", "eve", "Eve", "eve@example.com")
        with pytest.raises(ValueError):
            self.directory.replace_profile(stranger)

    def test_account_dict_round_trip(self):
        """Test account serialization"""
        account = Account.create("1234567890", "testuser", "Test User", "test@example.com")
        assert Account.from_dict(account.to_dict()) == account
