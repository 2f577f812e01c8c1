"""AlertEvent data model for emergency notifications."""

from datetime import datetime
from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field

from .sensor_kind import SensorKind


class AlertType(str, Enum):
    """Edge an alert was raised for."""

    ONSET = "onset"
    CLEARED = "cleared"


# Title and body per kind, as shown in the push notification.
ONSET_MESSAGES = {
    SensorKind.FLAME: (
        "🔥 FIRE DETECTED!",
        "Flame sensor detected fire! Check your home immediately!"
    ),
    SensorKind.GAS: (
        "💨 GAS LEAK DETECTED!",
        "Dangerous gas levels detected! Evacuate and ventilate immediately!"
    ),
    SensorKind.WATER: (
        "💧 WATER LEAK DETECTED!",
        "Water leak detected! Check for flooding immediately!"
    ),
}

CLEARED_MESSAGES = {
    SensorKind.FLAME: ("Fire alert cleared", "Flame sensor reading is back out of the danger zone."),
    SensorKind.GAS: ("Gas alert cleared", "Gas levels are back out of the danger zone."),
    SensorKind.WATER: ("Water alert cleared", "Water sensor reading is back out of the danger zone."),
}


class AlertEvent(BaseModel):
    """Emergency alert handed to the notifier."""

    model_config = {
        "json_encoders": {datetime: lambda v: v.isoformat()},
        "frozen": True,
        "extra": "forbid"
    }

    kind: SensorKind = Field(description="Sensor kind the alert concerns")
    alert_type: AlertType = Field(default=AlertType.ONSET)
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1, max_length=500)
    alert_id: int = Field(ge=1, description="Stable id per sensor kind")
    value: Optional[int] = Field(default=None, description="Reading that triggered the alert")
    timestamp: datetime = Field(default_factory=datetime.now)

    def model_post_init(self, __context: Any) -> None:
        """Only emergency-capable kinds may raise alerts."""
        if not self.kind.is_emergency_capable:
            raise ValueError(f"{self.kind.value} sensors do not raise alerts")

    @property
    def is_onset(self) -> bool:
        return self.alert_type == AlertType.ONSET

    @classmethod
    def create_onset_alert(cls, kind: SensorKind, value: Optional[int] = None) -> "AlertEvent":
        """Create the alert raised when a kind enters its critical zone."""
        title, body = ONSET_MESSAGES[kind]
        return cls(
            kind=kind,
            alert_type=AlertType.ONSET,
            title=title,
            body=body,
            alert_id=kind.alert_id,
            value=value
        )

    @classmethod
    def create_cleared_alert(cls, kind: SensorKind, value: Optional[int] = None) -> "AlertEvent":
        """Create the alert raised when a kind leaves its critical zone."""
        title, body = CLEARED_MESSAGES[kind]
        return cls(
            kind=kind,
            alert_type=AlertType.CLEARED,
            title=title,
            body=body,
            alert_id=kind.alert_id,
            value=value
        )

    def to_log_entry(self) -> str:
        """Convert alert to structured log entry."""
        return f"[{self.alert_type.value.upper()}] #{self.alert_id} {self.kind.value}: {self.title}"

    def __str__(self) -> str:
        """String representation for display."""
        timestamp_str = self.timestamp.strftime("%H:%M:%S")
        return f"{timestamp_str} {self.title} - {self.body}"
