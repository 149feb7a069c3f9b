"""
Operation Facade Module

Deposit, withdraw and transfer as single user-level operations. Each one
validates, mutates the balance ledger and appends to the transaction log
inside one account critical section and one storage transaction, then
publishes the committed balance.

Business-rule violations come back as failed ``OperationResult`` objects;
only storage faults raise.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Union

from .accounts import Account, AccountDirectory
from .currency import Money, to_money
from .ledger import BalanceLedger, Direction
from .transaction_log import TransactionLog, Transaction, TransactionKind, AccountSummary
from .storage import StorageInterface
from .identity import SessionContext
from .errors import (
    ErrorCode, LedgerError, InvalidAmountError, InsufficientFundsError,
    RecipientNotFoundError, SelfTransferError
)
from .events import (
    EventDispatcher, EventPayload, DomainEvent, Signal, create_transaction_event
)
from .logging_config import get_logger, log_action


AmountLike = Union[Money, Decimal, int, float, str]


@dataclass
class OperationResult:
    """Uniform outcome of a facade operation"""
    ok: bool
    message: str
    balance_after: Optional[Money] = None
    error: Optional[ErrorCode] = None
    transaction: Optional[Transaction] = None


class BankingOperations:
    """
    Orchestrates directory lookup, balance ledger and transaction log
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: BalanceLedger,
        transaction_log: TransactionLog,
        directory: AccountDirectory,
        max_transaction_amount: Optional[Money] = None,
        credit_transfer_recipient: bool = False,
        event_dispatcher: Optional[EventDispatcher] = None
    ):
        self.storage = storage
        self.ledger = ledger
        self.transaction_log = transaction_log
        self.directory = directory
        self.max_transaction_amount = max_transaction_amount
        self.credit_transfer_recipient = credit_transfer_recipient
        self._event_dispatcher = event_dispatcher
        self.logger = get_logger("bank_ledger.operations")

    def deposit(self, ctx: SessionContext, amount: AmountLike,
                description: str = "Deposit") -> OperationResult:
        """Credit the actor's account"""
        def run() -> OperationResult:
            money = self._parse_amount(amount)
            account = ctx.actor

            with self.ledger.account_lock(account.id):
                with self.storage.atomic():
                    new_balance = self.ledger.apply(account.id, money, Direction.CREDIT, notify=False)
                    transaction = self.transaction_log.append(
                        account.id, TransactionKind.DEPOSIT, money,
                        description or "Deposit", new_balance
                    )

            self._committed(account, transaction)
            return OperationResult(True, "Deposit successful", new_balance, transaction=transaction)

        return self._run("deposit", ctx, run)

    def withdraw(self, ctx: SessionContext, amount: AmountLike,
                 description: str = "Withdrawal") -> OperationResult:
        """Debit the actor's account if the balance covers it"""
        def run() -> OperationResult:
            money = self._parse_amount(amount)
            account = ctx.actor
            self._check_funds(account, money)

            with self.ledger.account_lock(account.id):
                with self.storage.atomic():
                    # apply() re-checks the balance under the lock
                    new_balance = self.ledger.apply(account.id, money, Direction.DEBIT, notify=False)
                    transaction = self.transaction_log.append(
                        account.id, TransactionKind.WITHDRAW, money,
                        description or "Withdrawal", new_balance
                    )

            self._committed(account, transaction)
            return OperationResult(True, "Withdrawal successful", new_balance, transaction=transaction)

        return self._run("withdraw", ctx, run)

    def transfer(self, ctx: SessionContext, amount: AmountLike, to_account_number: str,
                 description: str = "Transfer") -> OperationResult:
        """
        Send money from the actor's account to another directory account

        The recipient's own balance is only credited when
        ``credit_transfer_recipient`` is enabled; by default a transfer is a
        one-sided debit that records the counterparty.
        """
        def run() -> OperationResult:
            money = self._parse_amount(amount)
            sender = ctx.actor
            target = (to_account_number or "").strip()

            if target == sender.account_number:
                raise SelfTransferError("Cannot transfer to your own account")

            recipient = self.directory.find_by_account_number(target)
            if recipient is None:
                raise RecipientNotFoundError("Recipient account not found")
            if recipient.id == sender.id:
                raise SelfTransferError("Cannot transfer to your own account")

            self._check_funds(sender, money)

            credit_recipient = self.credit_transfer_recipient
            lock_ids = (sender.id, recipient.id) if credit_recipient else (sender.id,)
            recipient_transaction = None

            with self.ledger.locked(*lock_ids):
                with self.storage.atomic():
                    new_balance = self.ledger.apply(sender.id, money, Direction.DEBIT, notify=False)
                    transaction = self.transaction_log.append(
                        sender.id, TransactionKind.TRANSFER, money,
                        description or "Transfer", new_balance,
                        counterparty_from=sender.account_number,
                        counterparty_to=target
                    )
                    if credit_recipient:
                        recipient_balance = self.ledger.apply(
                            recipient.id, money, Direction.CREDIT, notify=False
                        )
                        recipient_transaction = self.transaction_log.append(
                            recipient.id, TransactionKind.TRANSFER, money,
                            description or "Transfer", recipient_balance,
                            counterparty_from=sender.account_number,
                            counterparty_to=target
                        )

            self._committed(sender, transaction)
            if recipient_transaction is not None:
                self._committed(recipient, recipient_transaction)
            return OperationResult(True, "Transfer successful", new_balance, transaction=transaction)

        return self._run("transfer", ctx, run)

    def list_transactions(self, ctx: SessionContext) -> List[Transaction]:
        """Read-only history of the actor's account, most recent first"""
        return self.transaction_log.list(ctx.actor.id)

    def summary(self, ctx: SessionContext, recent: int = 5) -> AccountSummary:
        return self.transaction_log.summarize(ctx.actor.id, recent=recent)

    def balance(self, ctx: SessionContext) -> Money:
        return self.ledger.read(ctx.actor.id)

    def balance_signal(self, ctx: SessionContext) -> Signal[Money]:
        return self.ledger.balance_signal(ctx.actor.id)

    def _run(self, operation: str, ctx: SessionContext,
             body: Callable[[], OperationResult]) -> OperationResult:
        try:
            result = body()
        except LedgerError as e:
            log_action(
                self.logger, "warning", f"{operation.capitalize()} rejected: {e.message}",
                account_id=ctx.actor.id, action=operation,
                extra={"error": e.code.value}
            )
            self._publish(EventPayload(
                event_type=DomainEvent.OPERATION_REJECTED,
                entity_type="account",
                entity_id=ctx.actor.id,
                data={"operation": operation, "error": e.code.value, "message": e.message}
            ))
            return OperationResult(
                ok=False,
                message=e.message,
                balance_after=None,
                error=e.code
            )

        log_action(
            self.logger, "info", result.message,
            account_id=ctx.actor.id, action=operation,
            resource=f"transaction:{result.transaction.id}",
            extra={
                "amount": result.transaction.amount.to_string(),
                "balance_after": result.balance_after.to_string()
            }
        )
        return result

    def _parse_amount(self, amount: AmountLike) -> Money:
        try:
            money = to_money(amount, self.ledger.currency)
        except ValueError:
            raise InvalidAmountError("Amount must be a valid number")
        if not money.is_positive():
            raise InvalidAmountError("Amount must be greater than 0")
        if self.max_transaction_amount is not None and money > self.max_transaction_amount:
            raise InvalidAmountError(
                f"Amount cannot exceed {self.max_transaction_amount.to_string()}"
            )
        return money

    def _check_funds(self, account: Account, money: Money) -> None:
        if money > self.ledger.read(account.id):
            raise InsufficientFundsError("Insufficient balance")

    def _committed(self, account: Account, transaction: Transaction) -> None:
        self.ledger.notify(account.id)
        self._publish(EventPayload(
            event_type=DomainEvent.BALANCE_CHANGED,
            entity_type="account",
            entity_id=account.id,
            data={"balance": str(transaction.resulting_balance.amount)}
        ))
        self._publish(create_transaction_event(account, transaction))

    def _publish(self, event: EventPayload) -> None:
        if self._event_dispatcher:
            self._event_dispatcher.publish(event)
