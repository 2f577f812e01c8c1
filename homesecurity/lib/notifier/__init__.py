"""Notifier collaborators: user-visible delivery of emergency alerts.

Each alert carries a stable ``alert_id`` per sensor kind. Notifiers treat a
new alert with the same id as a replacement for the previous one, the way a
push notification with the same id replaces the one already on screen.
"""

import threading
from typing import Dict, List, Optional

import structlog
from rich.console import Console
from rich.panel import Panel

from ...models import AlertEvent


logger = structlog.get_logger(__name__)


class LogNotifier:
    """Delivers alerts to the structured log."""

    def __init__(self):
        self.delivered = 0

    def notify(self, alert: AlertEvent) -> None:
        self.delivered += 1
        log = logger.warning if alert.is_onset else logger.info
        log(alert.title, body=alert.body, alert_id=alert.alert_id, kind=alert.kind.value, value=alert.value)


class ConsoleNotifier:
    """Prints alerts as rich panels and tracks the active alert per id."""

    def __init__(self, console: Optional[Console] = None, bell: bool = True):
        self.console = console or Console(stderr=True)
        self.bell = bell
        self._lock = threading.Lock()
        self._active: Dict[int, AlertEvent] = {}
        self.history: List[AlertEvent] = []

    def notify(self, alert: AlertEvent) -> None:
        """Show ``alert``, replacing any earlier alert with the same id."""
        with self._lock:
            replaced = self._active.get(alert.alert_id)
            if alert.is_onset:
                self._active[alert.alert_id] = alert
            else:
                self._active.pop(alert.alert_id, None)
            self.history.append(alert)

            # Keep only last 100 alerts
            if len(self.history) > 100:
                self.history = self.history[-100:]

        if replaced is not None:
            logger.debug("Replacing active alert", alert_id=alert.alert_id)

        style = "bold red" if alert.is_onset else "green"
        self.console.print(Panel(
            alert.body,
            title=alert.title,
            subtitle=f"#{alert.alert_id} {alert.timestamp.strftime('%H:%M:%S')}",
            border_style=style
        ))
        if self.bell and alert.is_onset:
            self.console.bell()

    def active_alerts(self) -> List[AlertEvent]:
        """Alerts currently showing, one per sensor kind at most."""
        with self._lock:
            return list(self._active.values())

    def dismiss(self, alert_id: int) -> bool:
        """Dismiss the active alert with ``alert_id``."""
        with self._lock:
            return self._active.pop(alert_id, None) is not None


__all__ = ["LogNotifier", "ConsoleNotifier"]
