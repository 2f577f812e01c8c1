"""Reading data models for individual sensor messages."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from .sensor_kind import SensorKind, Severity


class Reading(BaseModel):
    """A single message received for a sensor, decoded but not yet classified."""

    model_config = {
        "json_encoders": {datetime: lambda v: v.isoformat()},
        "frozen": True,
        "extra": "forbid"
    }

    kind: SensorKind = Field(description="Sensor kind the topic routed to")
    raw: str = Field(description="Payload decoded as UTF-8 text")
    value: Optional[int] = Field(
        default=None,
        description="Integer reading, None if the payload did not decode"
    )
    topic: str = Field(default="", description="Topic the message arrived on")
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def is_decoded(self) -> bool:
        return self.value is not None

    def __str__(self) -> str:
        """String representation for logging."""
        shown = self.value if self.is_decoded else repr(self.raw)
        return f"{self.kind.label}: {shown}"


class ClassifiedReading(BaseModel):
    """Reading value mapped to its severity zone and display text."""

    model_config = {
        "frozen": True,
        "extra": "forbid"
    }

    kind: SensorKind
    value: int
    severity: Severity
    display_text: str = Field(min_length=1)

    @property
    def is_critical(self) -> bool:
        return self.severity.is_critical

    def __str__(self) -> str:
        return f"{self.kind.label}={self.value} [{self.severity.value}] {self.display_text}"
