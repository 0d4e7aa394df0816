from enum import Enum
from typing import Optional


class TransferSide(str, Enum):
    source = "source"
    destination = "destination"


class LedgerError(Exception):
    """Base class for expected, caller-recoverable account errors."""

    error_code = "LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateAccountError(LedgerError):
    error_code = "DUPLICATE_ACCOUNT"

    def __init__(self, account_id: str):
        super().__init__(f"Account id {account_id} already exists!")
        self.account_id = account_id


class AccountNotFoundError(LedgerError):
    """Raised when an account id is missing from the store.

    ``side`` tells which leg of a transfer failed to resolve; it is ``None``
    for plain lookups.
    """

    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str, side: Optional[TransferSide] = None):
        super().__init__(f"Account id {account_id} does not exist")
        self.account_id = account_id
        self.side = side


class InvalidTransferError(LedgerError):
    error_code = "INVALID_TRANSFER"


class InsufficientBalanceError(LedgerError):
    error_code = "INSUFFICIENT_BALANCE"

    def __init__(self, account_id: str):
        super().__init__("Insufficient balance!")
        self.account_id = account_id


class TransferTimeoutError(LedgerError):
    """Raised when an account lock could not be acquired in time."""

    error_code = "TRANSFER_TIMEOUT"

    def __init__(self, account_id: str):
        super().__init__(f"Timed out waiting for account {account_id}")
        self.account_id = account_id
