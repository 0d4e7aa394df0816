import asyncio
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import replace
from datetime import datetime
from zoneinfo import ZoneInfo
from typing import Optional
import structlog

from exceptions import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InvalidTransferError,
    TransferSide,
    TransferTimeoutError,
)
from models import Account, Transfer, TransferResult
from notifications import FROM_ACCOUNT_MESSAGE, TO_ACCOUNT_MESSAGE, NotificationService
from repositories import AccountRepository

logger = structlog.get_logger()


class AccountService:
    def __init__(
        self,
        account_repo: AccountRepository,
        notification_service: NotificationService,
        timezone: str = "UTC",
        lock_timeout: Optional[float] = None
    ):
        self.account_repo = account_repo
        self.notification_service = notification_service
        self.timezone = ZoneInfo(timezone)
        self.lock_timeout = lock_timeout

    async def create_account(self, account: Account) -> Account:
        logger.info(
            "Creating account",
            account_id=account.account_id,
            balance=str(account.balance)
        )
        return await self.account_repo.create(account)

    async def get_account(self, account_id: str) -> Account:
        return await self.account_repo.get(account_id)

    async def transfer(self, transfer: Transfer) -> TransferResult:
        """Move funds between two accounts.

        Both accounts are locked in ascending id order, so concurrent
        transfers over the same pair never wait on each other in a cycle,
        whichever direction they go. Failures before the commit leave both
        balances untouched. Notification happens after the commit and its
        errors are only logged.
        """

        logger.info(
            "Processing transfer",
            account_from=transfer.account_from,
            account_to=transfer.account_to,
            amount=str(transfer.amount)
        )

        self._validate(transfer)

        await self._resolve(transfer.account_from, TransferSide.source)
        await self._resolve(transfer.account_to, TransferSide.destination)

        async with self._locked(transfer.account_from, transfer.account_to):
            # Balances may have moved while we were waiting for the locks
            from_account = await self.account_repo.get(transfer.account_from)
            to_account = await self.account_repo.get(transfer.account_to)

            # Strictly greater: a transfer may not drain the source to zero
            if not from_account.balance > transfer.amount:
                logger.warning(
                    "Insufficient balance for transfer",
                    account_id=from_account.account_id,
                    current_balance=str(from_account.balance),
                    requested_amount=str(transfer.amount)
                )
                raise InsufficientBalanceError(from_account.account_id)

            debited = replace(from_account, balance=from_account.balance - transfer.amount)
            credited = replace(to_account, balance=to_account.balance + transfer.amount)

            await self.account_repo.upsert(debited)
            await self.account_repo.upsert(credited)

        result = TransferResult(
            transfer_id=str(uuid.uuid4()),
            account_from=debited,
            account_to=credited,
            amount=transfer.amount,
            timestamp=datetime.now(self.timezone)
        )

        logger.info(
            "Transfer committed",
            transfer_id=result.transfer_id,
            account_from=debited.account_id,
            from_balance=str(debited.balance),
            account_to=credited.account_id,
            to_balance=str(credited.balance)
        )

        await self._notify(result)
        return result

    def _validate(self, transfer: Transfer) -> None:
        if transfer.account_from == transfer.account_to:
            logger.warning("Rejected transfer within same account", account_id=transfer.account_from)
            raise InvalidTransferError("To and From account should not be same!")

        if transfer.amount is None or not transfer.amount.is_finite() or transfer.amount <= 0:
            logger.warning("Rejected invalid transfer amount", amount=str(transfer.amount))
            raise InvalidTransferError("Amount must be positive number.")

    async def _resolve(self, account_id: str, side: TransferSide) -> Account:
        try:
            return await self.account_repo.get(account_id)
        except AccountNotFoundError as e:
            logger.warning("Account not found", account_id=account_id, side=side.value)
            raise AccountNotFoundError(account_id, side) from e

    @asynccontextmanager
    async def _locked(self, *account_ids: str):
        """Hold the locks of all given accounts, taken in sorted id order."""
        async with AsyncExitStack() as stack:
            for account_id in sorted(account_ids):
                lock = self.account_repo.get_lock(account_id)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Timed out acquiring account lock",
                        account_id=account_id,
                        timeout=self.lock_timeout
                    )
                    raise TransferTimeoutError(account_id)
                stack.callback(lock.release)
            yield

    async def _notify(self, result: TransferResult) -> None:
        debited, credited = result.account_from, result.account_to
        notifications = [
            (credited, TO_ACCOUNT_MESSAGE.format(
                amount=result.amount, counterparty=debited.account_id, balance=credited.balance)),
            (debited, FROM_ACCOUNT_MESSAGE.format(
                amount=result.amount, counterparty=credited.account_id, balance=debited.balance)),
        ]
        for account, message in notifications:
            try:
                await self.notification_service.notify_about_transfer(account, message)
            except Exception as e:
                logger.warning(
                    "Transfer notification failed",
                    transfer_id=result.transfer_id,
                    account_id=account.account_id,
                    error=str(e),
                    exc_info=True
                )


# Factory function for dependency injection
def get_account_service(
    account_repo: AccountRepository,
    notification_service: NotificationService,
    timezone: str = "UTC",
    lock_timeout: Optional[float] = None
) -> AccountService:
    return AccountService(account_repo, notification_service, timezone, lock_timeout)
