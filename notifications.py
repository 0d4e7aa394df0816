from abc import ABC, abstractmethod
import structlog

from models import Account

logger = structlog.get_logger()

FROM_ACCOUNT_MESSAGE = "Amount {amount} transferred to account {counterparty}. Available balance: {balance}"
TO_ACCOUNT_MESSAGE = "Amount {amount} received from account {counterparty}. Available balance: {balance}"


class NotificationService(ABC):
    @abstractmethod
    async def notify_about_transfer(self, account: Account, message: str) -> None:
        """Tell the account holder about a transfer touching their account."""
        pass


class LoggingNotificationService(NotificationService):
    """Delivers notifications to the log instead of a mail server."""

    async def notify_about_transfer(self, account: Account, message: str) -> None:
        logger.info(
            "Sending notification",
            account_id=account.account_id,
            notification=message
        )


_notification_service = LoggingNotificationService()


def get_notification_service() -> NotificationService:
    return _notification_service
