from .events import NotificationKind
from .channels import NotificationSender, LoggingNotificationSender, WebhookNotificationSender
from .dispatcher import NotificationDelivery, NotificationDispatcher, NotificationJob

__all__ = [
    "NotificationKind",
    "NotificationSender",
    "LoggingNotificationSender",
    "WebhookNotificationSender",
    "NotificationDelivery",
    "NotificationDispatcher",
    "NotificationJob",
]
