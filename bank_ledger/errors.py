"""
Error Taxonomy

Business-rule violations carry an ErrorCode so the operation facade can turn
them into structured failure results. Storage faults are kept separate: they
propagate to the caller.
"""

from enum import Enum


class ErrorCode(Enum):
    """Stable codes surfaced to callers on failure results"""
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    RECIPIENT_NOT_FOUND = "recipient_not_found"
    SELF_TRANSFER_REJECTED = "self_transfer_rejected"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_PROFILE = "invalid_profile"
    DUPLICATE_ACCOUNT_NUMBER = "duplicate_account_number"
    NOT_AUTHENTICATED = "not_authenticated"
    CORRUPT_PERSISTED_STATE = "corrupt_persisted_state"


class LedgerError(Exception):
    """Base class for business-rule violations"""
    code: ErrorCode

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidAmountError(LedgerError):
    """Amount is not positive, not parseable or above the configured ceiling"""
    code = ErrorCode.INVALID_AMOUNT


class InsufficientFundsError(LedgerError):
    """Debit exceeds the current balance"""
    code = ErrorCode.INSUFFICIENT_FUNDS


class RecipientNotFoundError(LedgerError):
    code = ErrorCode.RECIPIENT_NOT_FOUND


class SelfTransferError(LedgerError):
    code = ErrorCode.SELF_TRANSFER_REJECTED


class InvalidCredentialsError(LedgerError):
    code = ErrorCode.INVALID_CREDENTIALS


class InvalidProfileError(LedgerError):
    """Registration or profile data failed validation"""
    code = ErrorCode.INVALID_PROFILE


class DuplicateAccountNumberError(LedgerError):
    code = ErrorCode.DUPLICATE_ACCOUNT_NUMBER


class NotAuthenticatedError(LedgerError):
    """No current actor to run the operation for"""
    code = ErrorCode.NOT_AUTHENTICATED


class StorageError(Exception):
    """Storage medium unavailable or write failed"""


class CorruptRecordError(StorageError):
    """A stored record could not be decoded"""
    code = ErrorCode.CORRUPT_PERSISTED_STATE

    def __init__(self, table: str, record_id: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Corrupt record {table}/{record_id}{detail}")
        self.table = table
        self.record_id = record_id
