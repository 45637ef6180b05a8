"""Notification sender used for the daily expiry reminder."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

LOGGER = logging.getLogger("shelfwatch.expiry.notifier")

DAILY_REMINDER = "daily_reminder"
CHECK_AND_NOTIFY = "check_and_notify"


@dataclass(frozen=True)
class ExpiryNotification:
    """Payload forwarded to the outbound mail collaborator."""

    kind: str
    subject: str
    date: str
    counts: Dict[str, int]
    products: List[Dict[str, object]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind,
            "subject": self.subject,
            "date": self.date,
            "counts": dict(self.counts),
            "products": list(self.products),
        }


class NotificationSender(Protocol):
    def send(self, notification: ExpiryNotification) -> None:
        ...


class LoggingNotifier:
    """Default sender: records the notification in the application log."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER

    def send(self, notification: ExpiryNotification) -> None:
        self._logger.info(
            "Expiry notification %s for %s: %s",
            notification.kind,
            notification.date,
            notification.counts,
        )


class CallbackNotifier:
    """Adapter turning any callable into a sender."""

    def __init__(self, callback: Callable[[ExpiryNotification], None]) -> None:
        self._callback = callback

    def send(self, notification: ExpiryNotification) -> None:
        self._callback(notification)


__all__ = [
    "CHECK_AND_NOTIFY",
    "CallbackNotifier",
    "DAILY_REMINDER",
    "ExpiryNotification",
    "LoggingNotifier",
    "NotificationSender",
]
