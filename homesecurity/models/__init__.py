"""Data models for the home security monitor."""

from .sensor_kind import SensorKind, Severity, EMERGENCY_KINDS
from .sensor_reading import Reading, ClassifiedReading
from .alert_event import AlertEvent, AlertType
from .display_update import DisplayUpdate, DisplayError
from .session_state import SessionState, SessionStateChange, SubscriptionEvent, LatchState
from .monitor_configuration import MonitorConfiguration

__all__ = [
    "SensorKind",
    "Severity",
    "EMERGENCY_KINDS",
    "Reading",
    "ClassifiedReading",
    "AlertEvent",
    "AlertType",
    "DisplayUpdate",
    "DisplayError",
    "SessionState",
    "SessionStateChange",
    "SubscriptionEvent",
    "LatchState",
    "MonitorConfiguration",
]
