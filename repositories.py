from abc import ABC, abstractmethod
from typing import Dict
import asyncio
from collections import defaultdict

from exceptions import AccountNotFoundError, DuplicateAccountError
from models import Account


class AccountRepository(ABC):
    @abstractmethod
    async def create(self, account: Account) -> Account:
        """Insert a new account. Raises DuplicateAccountError if the id exists."""
        pass

    @abstractmethod
    async def get(self, account_id: str) -> Account:
        """Get the current account record. Raises AccountNotFoundError."""
        pass

    @abstractmethod
    async def upsert(self, account: Account) -> Account:
        """Insert or replace the record stored under the account's id."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove all accounts (for testing and administrative resets)."""
        pass

    @abstractmethod
    async def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass

    @abstractmethod
    def get_lock(self, account_id: str) -> asyncio.Lock:
        """Get the lock guarding mutations of a specific account."""
        pass


class InMemoryAccountRepository(AccountRepository):
    # Dict operations below never suspend, so each one is atomic with
    # respect to other tasks on the event loop.

    def __init__(self):
        self.accounts: Dict[str, Account] = {}
        self.locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create(self, account: Account) -> Account:
        existing = self.accounts.setdefault(account.account_id, account)
        if existing is not account:
            raise DuplicateAccountError(account.account_id)
        return account

    async def get(self, account_id: str) -> Account:
        account = self.accounts.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def upsert(self, account: Account) -> Account:
        self.accounts[account.account_id] = account
        return account

    async def clear(self) -> None:
        self.accounts.clear()
        self.locks.clear()

    async def get_accounts_count(self) -> int:
        return len(self.accounts)

    def get_lock(self, account_id: str) -> asyncio.Lock:
        return self.locks[account_id]


# Singleton instance, swapped out by reset_repositories() in tests
_account_repo = InMemoryAccountRepository()


def get_account_repository() -> AccountRepository:
    return _account_repo


def reset_repositories():
    """Reset all repositories to initial state (for testing only)."""
    global _account_repo
    _account_repo = InMemoryAccountRepository()
