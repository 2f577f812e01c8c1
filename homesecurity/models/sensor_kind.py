"""Sensor kinds and severity zones for the home security sensor network."""

from enum import Enum
from typing import Optional


class SensorKind(str, Enum):
    """Kinds of sensors publishing on the network.

    The enum value doubles as the canonical topic suffix.
    """

    FLAME = "flame"
    GAS = "gas"
    WATER = "water"
    LIGHT = "light"

    @property
    def is_emergency_capable(self) -> bool:
        """True for kinds that have a critical zone."""
        return self in EMERGENCY_KINDS

    @property
    def alert_id(self) -> Optional[int]:
        """Stable notifier id so repeated alerts of one kind replace each other."""
        return _ALERT_IDS.get(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Severity(str, Enum):
    """Severity zones.

    Flame, gas and water use normal/warning/critical. Light uses on/off/unknown
    and has no emergency semantics.
    """

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"

    @property
    def is_critical(self) -> bool:
        return self is Severity.CRITICAL


EMERGENCY_KINDS = (SensorKind.FLAME, SensorKind.GAS, SensorKind.WATER)

_ALERT_IDS = {
    SensorKind.FLAME: 1,
    SensorKind.GAS: 2,
    SensorKind.WATER: 3,
}
