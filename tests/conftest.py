import asyncio
import os

import pytest

# Must be set before main is imported so the cached settings pick it up
os.environ.setdefault("APP_ENV", "testing")

from repositories import InMemoryAccountRepository, reset_repositories


class SlowAccountRepository(InMemoryAccountRepository):
    """Yields to the event loop on every read and write so tasks interleave."""

    async def get(self, account_id):
        await asyncio.sleep(0)
        return await super().get(account_id)

    async def upsert(self, account):
        await asyncio.sleep(0)
        return await super().upsert(account)


@pytest.fixture(autouse=True)
def reset_state():
    """Reset repositories before each test."""
    reset_repositories()


@pytest.fixture
def repo():
    return SlowAccountRepository()
