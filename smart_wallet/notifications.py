"""
Notification sinks for goal-achievement alerts.

The engine only needs ``emit(title, body)``. Delivery is fire-and-forget:
the goal tracker logs and drops any exception a sink raises.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Tuple
import structlog

logger = structlog.get_logger(__name__)


class Notifier(ABC):
    """Receives discrete alert events."""

    @abstractmethod
    def emit(self, title: str, body: str) -> None:
        """Deliver one alert."""


class LogNotifier(Notifier):
    """Writes alerts to the structured log."""

    def emit(self, title: str, body: str) -> None:
        logger.info("notification_emitted", title=title, body=body)


class CallbackNotifier(Notifier):
    """Forwards alerts to a callable, e.g. a desktop or push channel."""

    def __init__(self, callback: Callable[[str, str], None]):
        self.callback = callback

    def emit(self, title: str, body: str) -> None:
        self.callback(title, body)


class RecordingNotifier(Notifier):
    """Keeps alerts in memory; handy for previews and tests."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    def emit(self, title: str, body: str) -> None:
        self.sent.append((title, body))
