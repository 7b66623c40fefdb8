"""Fire-and-forget notification dispatch.

Services call :meth:`NotificationDispatcher.enqueue` after their transaction
commits. The dispatcher is built per request around FastAPI's
``BackgroundTasks``, so delivery runs after the response is sent and the
request never waits on it. Each delivery is retried with exponential backoff;
the outcome is written to the ``notification`` table, and rows with status
``failed`` are the dead-letter log operators replay from.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from fastapi.encoders import jsonable_encoder
from sqlmodel import Session

from marketplace.models.notifications import Notification, NotificationStatus
from marketplace.notifications.channels import NotificationSender
from marketplace.notifications.events import NotificationKind

logger = logging.getLogger(__name__)


@dataclass
class NotificationJob:
    kind: NotificationKind
    recipient_user_id: int
    variables: Dict[str, Any] = field(default_factory=dict)
    related_id: Optional[int] = None


class NotificationDelivery:
    """Sends one job through the sender and logs the outcome. Shared by the app."""

    def __init__(
        self,
        sender: NotificationSender,
        session_factory: Callable[[], Session],
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ):
        self.sender = sender
        self.session_factory = session_factory
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    def deliver(self, job: NotificationJob) -> bool:
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                self.sender.notify(job.kind.value, job.recipient_user_id, job.variables)
                logger.info(
                    f"Notification {job.kind.value} sent to user {job.recipient_user_id} (attempt {attempt})"
                )
                self._record(job, NotificationStatus.sent, attempt)
                return True
            except Exception as e:
                last_error = str(e)
                logger.warning(f"Notification attempt {attempt} failed: {last_error}")
                if attempt < self.max_retries and self.backoff_seconds:
                    time.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        logger.error(
            f"Notification {job.kind.value} for user {job.recipient_user_id} permanently failed: {last_error}"
        )
        self._record(job, NotificationStatus.failed, self.max_retries, last_error)
        return False

    def _record(self, job, status, attempts, error=None) -> None:
        try:
            with self.session_factory() as session:
                session.add(
                    Notification(
                        kind=job.kind.value,
                        recipient_user_id=job.recipient_user_id,
                        related_id=job.related_id,
                        payload=job.variables,
                        status=status.value,
                        attempts=attempts,
                        error=error,
                    )
                )
                session.commit()
        except Exception as e:
            logger.error(f"Could not write notification log for {job.kind.value}: {e}")


class NotificationDispatcher:
    """Per-request handle: schedules deliveries on the request's background tasks."""

    def __init__(self, background_tasks: BackgroundTasks, delivery: NotificationDelivery):
        self.background_tasks = background_tasks
        self.delivery = delivery

    def enqueue(
        self,
        kind: NotificationKind,
        recipient_user_id: int,
        variables: Optional[Dict[str, Any]] = None,
        related_id: Optional[int] = None,
    ) -> None:
        try:
            job = NotificationJob(
                kind=NotificationKind(kind),
                recipient_user_id=recipient_user_id,
                variables=jsonable_encoder(variables or {}),
                related_id=related_id,
            )
            self.background_tasks.add_task(self.delivery.deliver, job)
        except Exception as e:
            # never propagate into the operation that triggered the notification
            logger.error(f"Could not schedule {kind} notification for user {recipient_user_id}: {e}")
