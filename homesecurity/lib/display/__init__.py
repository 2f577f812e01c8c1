"""Console display collaborator built on rich.

Keeps the latest status per sensor kind and renders it as a table together
with the session status line. It is a pure projection: nothing here feeds
back into the session.

Usage:
    from homesecurity.lib.display import ConsoleDisplay

    display = ConsoleDisplay()
    session = SessionManager(transport, display=display)

    with Live(display.render(), refresh_per_second=4) as live:
        ...
        live.update(display.render())
"""

import threading
from typing import Dict, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ...models import (
    DisplayUpdate,
    SensorKind,
    SessionState,
    SessionStateChange,
    Severity,
)


SEVERITY_STYLES = {
    Severity.NORMAL: "green",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "bold red",
    Severity.ON: "green",
    Severity.OFF: "red",
    Severity.UNKNOWN: "cyan",
}

STATE_STYLES = {
    SessionState.IDLE: "cyan",
    SessionState.CONNECTING: "yellow",
    SessionState.CONNECTED: "green",
    SessionState.DISCONNECTED: "cyan",
    SessionState.FAILED: "red",
}


class ConsoleDisplay:
    """Latest status per sensor kind, rendered with rich."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._lock = threading.Lock()
        self._statuses: Dict[SensorKind, DisplayUpdate] = {}
        self._state = SessionState.IDLE
        self._state_detail: Optional[str] = None
        self._last_unrouted: Optional[DisplayUpdate] = None
        self.reset()

    def reset(self) -> None:
        """Show "Waiting..." for every sensor kind."""
        with self._lock:
            self._statuses = {kind: DisplayUpdate.waiting(kind) for kind in SensorKind}
            self._last_unrouted = None

    def update(self, display_update: DisplayUpdate) -> None:
        """Record a status update from the session."""
        with self._lock:
            if display_update.kind is None:
                self._last_unrouted = display_update
                return
            self._statuses[display_update.kind] = display_update

    def on_state_change(self, change: SessionStateChange) -> None:
        """Track the session state; a disconnect resets every sensor."""
        with self._lock:
            self._state = change.state
            self._state_detail = change.reason

        if change.state == SessionState.DISCONNECTED:
            self.reset()

    def status_of(self, kind: SensorKind) -> DisplayUpdate:
        with self._lock:
            return self._statuses[kind]

    @property
    def session_state(self) -> SessionState:
        return self._state

    def status_line(self) -> Text:
        """Session status text, as shown above the sensor table."""
        with self._lock:
            state, detail = self._state, self._state_detail

        text = Text(state.display_text, style=STATE_STYLES[state])
        if detail:
            text.append(f" ({detail})", style="dim")
        return text

    def render(self) -> Table:
        """Build the status table."""
        table = Table(title="Home Security Sensors", caption=self.status_line(), expand=False)
        table.add_column("Sensor", style="bold")
        table.add_column("Status")
        table.add_column("Raw", justify="right")
        table.add_column("Updated", justify="right")

        with self._lock:
            statuses = [self._statuses[kind] for kind in SensorKind]
            unrouted = self._last_unrouted

        for status in statuses:
            style = SEVERITY_STYLES.get(status.severity, "cyan")
            updated = status.timestamp.strftime("%H:%M:%S") if status.raw is not None else "--"
            table.add_row(
                status.kind.label,
                Text(status.text, style=style),
                status.raw if status.raw is not None else "--",
                updated
            )

        if unrouted is not None:
            table.add_row("?", Text(unrouted.text, style="dim"), unrouted.raw or "--",
                          unrouted.timestamp.strftime("%H:%M:%S"))

        return table

    def print(self) -> None:
        """Print the status table once."""
        self.console.print(self.render())


__all__ = ["ConsoleDisplay"]
