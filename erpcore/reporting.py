"""Error-log and notification collaborators used by the error handler."""

import logging
from typing import List, Protocol
import click
from .models import ErrorLogEntry, Notification, Severity
from .storage import Storage

_LOG_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class ErrorLogger(Protocol):
    """Receives error log entries."""

    def log(self, entry: ErrorLogEntry) -> None:
        ...


class Notifier(Protocol):
    """Shows a message to the user."""

    def notify(self, notification: Notification) -> None:
        ...


class StorageErrorLogger:
    """Persists entries to the JSON error log."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def log(self, entry: ErrorLogEntry) -> None:
        self.storage.add_error(entry)


class LoggingErrorLogger:
    """Writes entries to a standard library logger."""

    def __init__(self, name: str = "erpcore.errors"):
        self.logger = logging.getLogger(name)

    def log(self, entry: ErrorLogEntry) -> None:
        self.logger.log(
            _LOG_LEVELS[entry.severity],
            "%s: %s (context=%s)",
            entry.error_type,
            entry.error_message,
            entry.context,
        )


class CollectingErrorLogger:
    """Keeps entries in memory."""

    def __init__(self):
        self.entries: List[ErrorLogEntry] = []

    def log(self, entry: ErrorLogEntry) -> None:
        self.entries.append(entry)


class ClickNotifier:
    """Echoes notifications to the terminal."""

    def notify(self, notification: Notification) -> None:
        err = notification.variant == "destructive"
        symbol = "✗" if err else "✓"
        click.echo(f"{symbol} {notification.title}: {notification.description}", err=err)


class CollectingNotifier:
    """Keeps notifications in memory."""

    def __init__(self):
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
