"""
Tests for the per-account transaction log
"""

import pytest
from decimal import Decimal

from bank_ledger.transaction_log import TransactionLog, TransactionKind
from bank_ledger.currency import Money, Currency
from bank_ledger.storage import InMemoryStorage, SQLiteStorage


def usd(value):
    return Money(Decimal(value), Currency.USD)


class TestTransactionLog:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.log = TransactionLog(self.storage, Currency.USD)

    def test_empty_log(self):
        """Test an unused account has an empty log"""
        assert self.log.list("acc_001") == []
        summary = self.log.summarize("acc_001")
        assert summary.transaction_count == 0
        assert summary.total_deposits.is_zero()

    def test_newest_entry_first(self):
        """Test the newest transaction heads the log"""
        first = self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        second = self.log.append("acc_001", TransactionKind.WITHDRAW, usd("40"), "Groceries", usd("1060"))

        transactions = self.log.list("acc_001")
        assert [t.id for t in transactions] == [second.id, first.id]
        assert transactions[0].resulting_balance == usd("1060.00")
        assert second.id > first.id

    def test_list_is_repeatable(self):
        """Test listing twice gives the same history"""
        self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        assert self.log.list("acc_001") == self.log.list("acc_001")

    def test_logs_are_per_account(self):
        """Test logs are kept per account"""
        self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        assert self.log.list("acc_002") == []

    def test_transfer_counterparties(self):
        """Test transfer counterparties are stored"""
        transaction = self.log.append(
            "acc_001", TransactionKind.TRANSFER, usd("100"), "Gift", usd("900"),
            counterparty_from="1234567890", counterparty_to="0987654321"
        )

        stored = self.log.list("acc_001")[0]
        assert stored == transaction
        assert stored.counterparty_from == "1234567890"
        assert stored.counterparty_to == "0987654321"

    def test_counterparties_only_on_transfers(self):
        """Test counterparties are rejected on other kinds"""
        with pytest.raises(ValueError):
            self.log.append(
                "acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"),
                counterparty_to="0987654321"
            )
        assert self.log.list("acc_001") == []

    def test_summarize(self):
        """Test per-kind totals and recent entries"""
        self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "a", usd("1100"))
        self.log.append("acc_001", TransactionKind.DEPOSIT, usd("50.25"), "b", usd("1150.25"))
        self.log.append("acc_001", TransactionKind.WITHDRAW, usd("20"), "c", usd("1130.25"))
        self.log.append("acc_001", TransactionKind.TRANSFER, usd("30"), "d", usd("1100.25"),
                        counterparty_from="1234567890", counterparty_to="0987654321")

        summary = self.log.summarize("acc_001", recent=2)
        assert summary.total_deposits == usd("150.25")
        assert summary.total_withdrawals == usd("20.00")
        assert summary.total_transfers == usd("30.00")
        assert summary.transaction_count == 4
        assert [t.description for t in summary.recent] == ["d", "c"]

    def test_corrupt_log_reads_empty(self):
        """Test a corrupt log reads as empty and keeps its data aside"""
        self.storage.save("transaction_logs", "acc_001", {"account_id": "acc_001", "entries": "garbage"})
        assert self.log.list("acc_001") == []

        # Appending starts a fresh list and keeps the unreadable value aside
        self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        self.log.append("acc_001", TransactionKind.DEPOSIT, usd("5"), "Tip", usd("1105"))
        assert len(self.log.list("acc_001")) == 2
        assert self.storage.load("transaction_logs", "acc_001")["discarded"] == ["garbage"]

    def test_non_record_entries_survive_append(self):
        """Test stray non-record entries are moved aside instead of dropped"""
        good = self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        data = self.storage.load("transaction_logs", "acc_001")
        data["entries"].append(42)
        self.storage.save("transaction_logs", "acc_001", data)
        assert self.log.list("acc_001") == [good]

        newer = self.log.append("acc_001", TransactionKind.WITHDRAW, usd("10"), "Lunch", usd("1090"))

        stored = self.storage.load("transaction_logs", "acc_001")
        assert stored["discarded"] == [42]
        assert self.log.list("acc_001") == [newer, good]

    def test_unreadable_entries_are_skipped(self):
        """Test undecodable entries are skipped on read"""
        good = self.log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        data = self.storage.load("transaction_logs", "acc_001")
        data["entries"].append({"id": "broken"})
        self.storage.save("transaction_logs", "acc_001", data)

        assert self.log.list("acc_001") == [good]

    def test_undecodable_log_is_recorded_before_overwrite(self, tmp_path):
        """Test an undecodable stored log leaves a trace under 'discarded'"""
        storage = SQLiteStorage(tmp_path / "ledger.db")
        log = TransactionLog(storage, Currency.USD)
        log.append("acc_001", TransactionKind.DEPOSIT, usd("100"), "Paycheck", usd("1100"))
        storage._connection.execute(
            "UPDATE transaction_logs SET data = ? WHERE id = ?", ("{broken", "acc_001")
        )
        storage._connection.commit()

        assert log.list("acc_001") == []
        log.append("acc_001", TransactionKind.DEPOSIT, usd("5"), "Tip", usd("1005"))

        stored = storage.load("transaction_logs", "acc_001")
        assert len(stored["entries"]) == 1
        assert "transaction_logs/acc_001" in stored["discarded"][0]
        storage.close()
