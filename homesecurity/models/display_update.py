"""DisplayUpdate model: the status projection handed to the display collaborator."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .sensor_kind import SensorKind, Severity
from .sensor_reading import ClassifiedReading


WAITING_TEXT = "Waiting..."


class DisplayError(str, Enum):
    """Why a message could not be shown as a classified value."""

    DECODE_ERROR = "decode_error"
    UNROUTED = "unrouted"


class DisplayUpdate(BaseModel):
    """Current status of one sensor as the display should render it."""

    model_config = {
        "json_encoders": {datetime: lambda v: v.isoformat()},
        "frozen": True,
        "extra": "forbid"
    }

    kind: Optional[SensorKind] = Field(
        default=None,
        description="Sensor kind, None when the topic did not route"
    )
    text: str = Field(description="Status text")
    severity: Optional[Severity] = Field(default=None)
    error: Optional[DisplayError] = Field(default=None)
    raw: Optional[str] = Field(default=None, description="Raw payload text")
    topic: Optional[str] = Field(default=None)
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def from_classified(cls, classified: ClassifiedReading, topic: Optional[str] = None) -> "DisplayUpdate":
        return cls(
            kind=classified.kind,
            text=classified.display_text,
            severity=classified.severity,
            raw=str(classified.value),
            topic=topic
        )

    @classmethod
    def decode_error(cls, kind: SensorKind, raw: str, topic: Optional[str] = None) -> "DisplayUpdate":
        return cls(
            kind=kind,
            text=f"Error: {raw}",
            error=DisplayError.DECODE_ERROR,
            raw=raw,
            topic=topic
        )

    @classmethod
    def unrouted(cls, topic: str, raw: str) -> "DisplayUpdate":
        return cls(
            kind=None,
            text=f"Unrouted topic: {topic}",
            error=DisplayError.UNROUTED,
            raw=raw,
            topic=topic
        )

    @classmethod
    def waiting(cls, kind: SensorKind) -> "DisplayUpdate":
        """Placeholder shown before any reading arrives."""
        return cls(kind=kind, text=WAITING_TEXT)
