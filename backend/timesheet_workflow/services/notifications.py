"""Notification dispatchers for workflow events.

Delivery is an external concern; the workflow only hands events over and
never waits for, or fails on, delivery.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field

from timesheet_workflow.config import Settings

log = logging.getLogger(__name__)


class SubmissionEvent(BaseModel):
    """Emitted once per successful submission."""
    recipient_ids: List[int] = Field(default_factory=list, description="Users who should review the submission")
    timesheet_id: int = Field(..., description="Submitted timesheet")
    submitted_by: int = Field(..., description="Owner of the timesheet")
    week_start_date: date = Field(..., description="Monday of the submitted week")
    total_hours: float = Field(..., description="Total hours at submission time")
    status: str = Field(..., description="Status the timesheet moved to")


class NotificationDispatcher(ABC):
    """Abstract base for notification delivery."""

    @abstractmethod
    def dispatch(self, event: SubmissionEvent) -> None:
        """Hand the event over for delivery. Must not raise."""
        pass

    def close(self) -> None:
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher: writes events to the log."""

    def dispatch(self, event: SubmissionEvent) -> None:
        log.info(
            f"Submission notification: timesheet {event.timesheet_id} ({event.status}) "
            f"by user {event.submitted_by} -> recipients {event.recipient_ids}"
        )


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs events as JSON to a webhook on a background thread."""

    def __init__(self, url: str, timeout: float = 5.0, executor: Optional[ThreadPoolExecutor] = None):
        self.url = url
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")

    def dispatch(self, event: SubmissionEvent) -> None:
        self._executor.submit(self._post, event)

    def _post(self, event: SubmissionEvent) -> bool:
        payload = {"event": "timesheet_submitted", **event.model_dump(mode="json")}
        try:
            response = httpx.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            log.debug(f"Notification for timesheet {event.timesheet_id} delivered ({response.status_code})")
            return True
        except httpx.HTTPError as e:
            log.error(f"Notification webhook failed for timesheet {event.timesheet_id}: {e}")
            return False

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    if settings.notification_webhook_url:
        log.info(f"Using webhook notification dispatcher: {settings.notification_webhook_url}")
        return WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    return LoggingNotificationDispatcher()
