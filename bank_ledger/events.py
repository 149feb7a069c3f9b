"""
Event System Module

Two publish/subscribe primitives:

* ``EventDispatcher`` broadcasts domain events (transaction appended, session
  started, ...) to handlers subscribed by event type or to all events.
* ``Signal`` is a broadcast channel with a retained last value. Late
  subscribers immediately receive the current value; this is what the
  presentation layer binds to for the current user and account balances.

Handler failures are logged and never reach the publisher.
"""

from enum import Enum
from typing import Callable, Dict, Generic, List, Any, Optional, TypeVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


T = TypeVar("T")


class DomainEvent(Enum):
    """Domain events that can occur in the ledger"""

    # Session events
    SESSION_STARTED = "session.started"
    SESSION_ENDED = "session.ended"

    # Account events
    ACCOUNT_REGISTERED = "account.registered"
    PROFILE_UPDATED = "account.profile_updated"

    # Ledger events
    BALANCE_CHANGED = "ledger.balance_changed"
    TRANSACTION_APPENDED = "transaction.appended"
    OPERATION_REJECTED = "operation.rejected"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("bank_ledger.events")

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {_handler_name(handler)}")

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                    self.logger.debug(f"Unsubscribed handler {_handler_name(handler)} from {event_type.value}")
                except ValueError:
                    self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
            global_handlers = list(self._global_handlers)
            self.logger.debug(f"Publishing event {event.event_type.value} for {event.entity_type}:{event.entity_id}")

            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    # Log but don't break the main operation
                    self.logger.error(f"Error in event handler {_handler_name(handler)} for {event.event_type.value}: {e}")

            for handler in global_handlers:
                try:
                    handler(event)
                except Exception as e:
                    self.logger.error(f"Error in global event handler {_handler_name(handler)} for {event.event_type.value}: {e}")


class Signal(Generic[T]):
    """
    Broadcast channel that retains its last value.

    ``subscribe`` delivers the current value straight away, then every later
    ``publish``. Publishers may pass a monotonically increasing ``sequence``;
    a publish carrying a sequence not newer than the last one seen is dropped,
    so values computed under some other lock can be published after that lock
    is released without ever rolling the signal back to a stale value.
    """

    def __init__(self, initial: T, name: str = "signal"):
        self.name = name
        self._value = initial
        self._sequence = -1
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = RLock()
        self.logger = logging.getLogger("bank_ledger.events")

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[], None]:
        """Subscribe and receive the current value; returns an unsubscribe callable"""
        with self._lock:
            self._subscribers.append(handler)
            self._deliver(handler, self._value)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._subscribers:
                    self._subscribers.remove(handler)

        return unsubscribe

    def publish(self, value: T, sequence: Optional[int] = None) -> bool:
        """Set and broadcast a new value; returns False when dropped as stale"""
        with self._lock:
            if sequence is not None:
                if sequence <= self._sequence:
                    self.logger.debug(f"Dropped stale value for {self.name} (sequence {sequence})")
                    return False
                self._sequence = sequence
            self._value = value
            for handler in list(self._subscribers):
                self._deliver(handler, value)
            return True

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _deliver(self, handler: Callable[[T], None], value: T) -> None:
        try:
            handler(value)
        except Exception as e:
            self.logger.error(f"Error in {self.name} subscriber {_handler_name(handler)}: {e}")


def create_transaction_event(account, transaction) -> EventPayload:
    """Create a transaction-appended event"""
    return EventPayload(
        event_type=DomainEvent.TRANSACTION_APPENDED,
        entity_type="transaction",
        entity_id=transaction.id,
        data={
            "account_id": account.id,
            "account_number": account.account_number,
            "kind": transaction.kind.value,
            "amount": str(transaction.amount.amount),
            "currency": transaction.amount.currency.code,
            "description": transaction.description,
            "counterparty_from": transaction.counterparty_from,
            "counterparty_to": transaction.counterparty_to,
            "resulting_balance": str(transaction.resulting_balance.amount)
        }
    )


def create_account_event(event_type: DomainEvent, account) -> EventPayload:
    """Create an account-related event"""
    return EventPayload(
        event_type=event_type,
        entity_type="account",
        entity_id=account.id,
        data={
            "account_number": account.account_number,
            "username": account.username,
            "display_name": account.display_name,
            "email": account.email
        }
    )
