"""Session state and the events the session manager emits about it."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict
from pydantic import BaseModel, Field

from .sensor_kind import SensorKind, EMERGENCY_KINDS


class SessionState(str, Enum):
    """Lifecycle of one connect/subscribe/disconnect cycle."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"

    @property
    def can_connect(self) -> bool:
        """States from which a fresh handshake may be started."""
        return self in (SessionState.IDLE, SessionState.DISCONNECTED, SessionState.FAILED)

    @property
    def display_text(self) -> str:
        return _STATE_TEXT[self]


_STATE_TEXT = {
    SessionState.IDLE: "Not connected",
    SessionState.CONNECTING: "Connecting...",
    SessionState.CONNECTED: "Connected ✓",
    SessionState.DISCONNECTED: "Disconnected",
    SessionState.FAILED: "Connection failed ✗",
}


class SessionStateChange(BaseModel):
    """Emitted on every session state transition."""

    model_config = {
        "json_encoders": {datetime: lambda v: v.isoformat()},
        "frozen": True,
        "extra": "forbid"
    }

    state: SessionState
    previous_state: SessionState
    reason: Optional[str] = Field(
        default=None,
        description="Failure reason, or why the transport dropped the link"
    )
    unexpected: bool = Field(
        default=False,
        description="True when the transport dropped the link rather than the caller"
    )
    attempt_id: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def is_unexpected_disconnect(self) -> bool:
        return self.state == SessionState.DISCONNECTED and self.unexpected

    def __str__(self) -> str:
        reason = f" ({self.reason})" if self.reason else ""
        return f"{self.previous_state.value} -> {self.state.value}{reason}"


class SubscriptionEvent(BaseModel):
    """Outcome of a subscribe request."""

    model_config = {
        "frozen": True,
        "extra": "forbid"
    }

    topic_filter: str
    success: bool
    reason: Optional[str] = None
    attempt_id: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)


@dataclass
class LatchState:
    """Per-kind alert latch.

    ``latched[kind]`` is True iff the latest classification for ``kind`` was
    critical and nothing non-critical has arrived since. Light has no entry.
    """

    latched: Dict[SensorKind, bool] = field(
        default_factory=lambda: {kind: False for kind in EMERGENCY_KINDS}
    )

    def is_latched(self, kind: SensorKind) -> bool:
        return self.latched[kind]

    def set(self, kind: SensorKind, value: bool) -> None:
        if kind not in self.latched:
            raise KeyError(f"{kind.value} has no alert latch")
        self.latched[kind] = value

    def reset(self) -> None:
        for kind in self.latched:
            self.latched[kind] = False

    def snapshot(self) -> Dict[str, bool]:
        return {kind.value: value for kind, value in self.latched.items()}
