import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)


class NotificationSender(ABC):
    """Delivery transport. Implementations raise on failure."""

    @abstractmethod
    def notify(self, kind: str, recipient_user_id: int, variables: Dict[str, Any]) -> None:
        ...


class LoggingNotificationSender(NotificationSender):
    """Default sender when no delivery service is configured."""

    def notify(self, kind, recipient_user_id, variables):
        logger.info(f"Notification {kind} -> user {recipient_user_id}: {variables}")


class WebhookNotificationSender(NotificationSender):
    """Hands the notification to an external delivery service over HTTP."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    def notify(self, kind, recipient_user_id, variables):
        response = requests.post(
            self.url,
            json={
                "kind": kind,
                "recipient_user_id": recipient_user_id,
                "variables": variables,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
