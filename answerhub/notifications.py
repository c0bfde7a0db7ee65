import logging
from dataclasses import dataclass

from django.contrib import messages

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    level: str = SUCCESS

    @property
    def is_error(self) -> bool:
        return self.level == ERROR


def log_notification(notification: Notification) -> None:
    """Default notifier when no presentation layer is attached."""
    if notification.is_error:
        logger.error(f"{notification.title}: {notification.description}")
    else:
        logger.info(f"{notification.title}: {notification.description}")


class NotificationLog:
    """Notifier that keeps everything it was given, in order."""

    def __init__(self):
        self.entries = []

    def __call__(self, notification: Notification) -> None:
        log_notification(notification)
        self.entries.append(notification)

    @property
    def errors(self):
        return [n for n in self.entries if n.is_error]

    def as_list(self):
        return [
            {"title": n.title, "description": n.description, "level": n.level}
            for n in self.entries
        ]


class RequestNotifier(NotificationLog):
    """Also mirrors each notification into the request's message storage."""

    def __init__(self, request):
        super().__init__()
        self.request = request

    def __call__(self, notification: Notification) -> None:
        super().__call__(notification)
        level = messages.ERROR if notification.is_error else messages.SUCCESS
        messages.add_message(
            self.request,
            level,
            f"{notification.title}: {notification.description}",
            fail_silently=True,
        )
