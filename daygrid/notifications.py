"""Notification collaborator for daygrid.

Notifications are fire-and-forget: the core hands over a level and a short
message and never waits for a response.
"""

import logging

from daygrid.models.notification import Notification, NotificationLevel

logger = logging.getLogger(__name__)


class Notifier:
    """Surfaces transient success/error messages to the user."""

    def notify(self, level: NotificationLevel, message: str) -> None:
        raise NotImplementedError

    def success(self, message: str) -> None:
        self.notify(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        self.notify(NotificationLevel.ERROR, message)


class LoggingNotifier(Notifier):
    """Default notifier: writes notifications to the log."""

    def notify(self, level: NotificationLevel, message: str) -> None:
        notification = Notification(level=level, message=message)
        if notification.level == NotificationLevel.ERROR.value:
            logger.warning(f"[notify] {notification.message}")
        else:
            logger.info(f"[notify] {notification.message}")
