"""
Identity Store Module

Tracks who the current actor is and exposes it as retained-value signals.
Credentials are checked superficially (minimum password length only); there
is no real authentication here.

The actor and the login flag are persisted as two markers in the ``session``
table so a restarted process resumes the same session.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
import threading
import uuid

from pydantic import ValidationError

from .accounts import Account, AccountDirectory
from .storage import StorageInterface
from .schemas import RegistrationProfile, EMAIL_PATTERN
from .errors import (
    ErrorCode, LedgerError, CorruptRecordError, InvalidCredentialsError,
    InvalidProfileError, NotAuthenticatedError, DuplicateAccountNumberError
)
from .events import (
    EventDispatcher, EventPayload, DomainEvent, Signal, create_account_event
)
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class SessionContext:
    """Explicit actor context handed to every facade operation"""
    actor: Account
    session_id: str = ""


@dataclass
class AuthResult:
    """Outcome of authenticate/register"""
    ok: bool
    message: str
    account: Optional[Account] = None
    error: Optional[ErrorCode] = None


class IdentityStore:
    """
    Current-actor state with a single writer (authenticate, register,
    deregister, update_profile) and any number of signal readers
    """

    SESSION_TABLE = "session"
    ACTOR_KEY = "current_actor"
    LOGIN_KEY = "logged_in"

    def __init__(
        self,
        storage: StorageInterface,
        directory: AccountDirectory,
        password_min_length: int = 8,
        event_dispatcher: Optional[EventDispatcher] = None
    ):
        self.storage = storage
        self.directory = directory
        self.password_min_length = password_min_length
        self._event_dispatcher = event_dispatcher
        self.logger = get_logger("bank_ledger.identity")
        self._lock = threading.RLock()
        self._session_id = ""

        self._actor = self._restore_actor()
        logged_in = self._load_login_flag() and self._actor is not None
        if self._actor is not None:
            self._session_id = str(uuid.uuid4())

        self.current_user: Signal[Optional[Account]] = Signal(self._actor, name="current_user")
        self.logged_in: Signal[bool] = Signal(logged_in, name="logged_in")

    def current_actor(self) -> Optional[Account]:
        """The logged-in account, or None"""
        with self._lock:
            return self._actor

    def is_logged_in(self) -> bool:
        return self.logged_in.value

    def context(self) -> SessionContext:
        """
        Snapshot the current actor for a facade call

        Raises:
            NotAuthenticatedError: If nobody is logged in
        """
        with self._lock:
            if self._actor is None:
                raise NotAuthenticatedError("No user is logged in")
            return SessionContext(actor=self._actor, session_id=self._session_id)

    def authenticate(self, username: str, password: str) -> AuthResult:
        """
        Log a user in by username

        Any password of at least ``password_min_length`` characters is
        accepted. An unknown username gets a freshly registered account.
        """
        try:
            if not username or not username.strip():
                raise InvalidCredentialsError("Username is required")
            if password is None or len(password) < self.password_min_length:
                raise InvalidCredentialsError(
                    f"Invalid credentials. Password must be at least {self.password_min_length} characters."
                )

            username = username.strip()
            account = self.directory.find_by_username(username)
            if account is None:
                account = self.directory.create_account(
                    username=username,
                    display_name=username,
                    email=f"{username}@example.com"
                )
        except LedgerError as e:
            log_action(
                self.logger, "warning", "Login rejected",
                action="authenticate", resource=f"user:{username}",
                extra={"error": e.code.value}
            )
            return AuthResult(ok=False, message=e.message, error=e.code)

        self._start_session(account)
        log_action(
            self.logger, "info", "Login successful",
            account_id=account.id, action="authenticate",
            resource=f"account:{account.account_number}"
        )
        return AuthResult(ok=True, message="Login successful", account=account)

    def register(self, profile: Union[RegistrationProfile, Dict[str, Any]]) -> AuthResult:
        """
        Create an account and directory entry, then log it in

        An account number is generated when the profile carries none.
        """
        try:
            if not isinstance(profile, RegistrationProfile):
                try:
                    profile = RegistrationProfile.model_validate(profile)
                except ValidationError as e:
                    raise InvalidProfileError(f"Invalid registration data: {e.errors()[0]['msg']}")

            account = self.directory.create_account(
                username=profile.username,
                display_name=profile.display_name,
                email=profile.email,
                account_number=profile.account_number
            )
        except LedgerError as e:
            log_action(
                self.logger, "warning", "Registration rejected",
                action="register", extra={"error": e.code.value, "reason": e.message}
            )
            return AuthResult(ok=False, message=e.message, error=e.code)

        self._start_session(account)
        log_action(
            self.logger, "info", "Registration successful",
            account_id=account.id, action="register",
            resource=f"account:{account.account_number}"
        )
        return AuthResult(ok=True, message="Registration successful", account=account)

    def deregister(self) -> None:
        """Clear the current actor; ledger data is kept"""
        with self._lock:
            previous = self._actor
            with self.storage.atomic():
                self.storage.delete(self.SESSION_TABLE, self.ACTOR_KEY)
                self.storage.delete(self.SESSION_TABLE, self.LOGIN_KEY)
            self._actor = None
            self._session_id = ""
            self.current_user.publish(None)
            self.logged_in.publish(False)

        if previous is not None:
            log_action(
                self.logger, "info", "Logged out",
                account_id=previous.id, action="deregister"
            )
            self._publish(EventPayload(
                event_type=DomainEvent.SESSION_ENDED,
                entity_type="account",
                entity_id=previous.id,
                data={"account_number": previous.account_number}
            ))

    def update_profile(self, display_name: Optional[str] = None,
                       email: Optional[str] = None) -> Account:
        """
        Change the current actor's display name and/or email

        Raises:
            NotAuthenticatedError: If nobody is logged in
            InvalidProfileError: If a supplied value is blank or malformed
        """
        with self._lock:
            if self._actor is None:
                raise NotAuthenticatedError("No user is logged in")

            changes: Dict[str, Any] = {}
            if display_name is not None:
                if not display_name.strip():
                    raise InvalidProfileError("Display name cannot be empty")
                changes["display_name"] = display_name.strip()
            if email is not None:
                if not EMAIL_PATTERN.match(email.strip()):
                    raise InvalidProfileError("Invalid email address")
                changes["email"] = email.strip()
            if not changes:
                return self._actor

            updated = replace(self._actor, updated_at=datetime.now(timezone.utc), **changes)
            self.directory.replace_profile(updated)
            self.storage.save(self.SESSION_TABLE, self.ACTOR_KEY, updated.to_dict())
            self._actor = updated
            self.current_user.publish(updated)

        log_action(
            self.logger, "info", "Profile updated",
            account_id=updated.id, action="update_profile",
            extra={"fields": sorted(changes)}
        )
        if self._event_dispatcher:
            self._event_dispatcher.publish(create_account_event(DomainEvent.PROFILE_UPDATED, updated))
        return updated

    def _start_session(self, account: Account) -> None:
        with self._lock:
            with self.storage.atomic():
                self.storage.save(self.SESSION_TABLE, self.ACTOR_KEY, account.to_dict())
                self.storage.save(self.SESSION_TABLE, self.LOGIN_KEY, {"value": True})
            self._actor = account
            self._session_id = str(uuid.uuid4())
            self.current_user.publish(account)
            self.logged_in.publish(True)

        self._publish(EventPayload(
            event_type=DomainEvent.SESSION_STARTED,
            entity_type="account",
            entity_id=account.id,
            data={"account_number": account.account_number, "session_id": self._session_id}
        ))

    def _restore_actor(self) -> Optional[Account]:
        """Load the persisted actor marker; unreadable markers mean no actor"""
        try:
            data = self.storage.load(self.SESSION_TABLE, self.ACTOR_KEY)
        except CorruptRecordError as e:
            self.logger.warning(f"Discarding unreadable session marker: {e}")
            return None
        if data is None:
            return None

        try:
            account = Account.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Discarding corrupt session marker: {e}")
            return None

        known = self.directory.get_account(account.id)
        if known is not None:
            if known.account_number != account.account_number:
                return known
            # Profile edits made in the previous session win over the seeded entry
            self.directory.replace_profile(account)
            return account
        try:
            self.directory.register(account)
        except DuplicateAccountNumberError:
            self.logger.warning(
                f"Restored actor {account.id} shares account number {account.account_number} "
                f"with another directory entry; it will not be reachable as a transfer recipient"
            )
        return account

    def _load_login_flag(self) -> bool:
        try:
            data = self.storage.load(self.SESSION_TABLE, self.LOGIN_KEY)
        except CorruptRecordError as e:
            self.logger.warning(f"Discarding unreadable login flag: {e}")
            return False
        return bool(data and data.get("value") is True)

    def _publish(self, event: EventPayload) -> None:
        if self._event_dispatcher:
            self._event_dispatcher.publish(event)
