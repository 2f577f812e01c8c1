"""Classification of raw sensor payloads into severity zones.

Flame sensors read high when all is well and drop towards zero near a fire.
Gas and water sensors read low when all is well and climb when something leaks.
Light sensors report a plain on/off bit.
"""

import re
from typing import Dict

from ..models import SensorKind, Severity, Reading, ClassifiedReading


_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

# Sensor firmware reports signed 32-bit readings
INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1

DISPLAY_TEXT: Dict[SensorKind, Dict[Severity, str]] = {
    SensorKind.FLAME: {
        Severity.NORMAL: "Good",
        Severity.WARNING: "Heat Detected",
        Severity.CRITICAL: "FIRE DETECTED!",
    },
    SensorKind.GAS: {
        Severity.NORMAL: "Good",
        Severity.WARNING: "Minor Leak",
        Severity.CRITICAL: "GAS LEAK!",
    },
    SensorKind.WATER: {
        Severity.NORMAL: "Good",
        Severity.WARNING: "Minor Leakage",
        Severity.CRITICAL: "WATER LEAK!",
    },
    SensorKind.LIGHT: {
        Severity.ON: "On",
        Severity.OFF: "Off",
    },
}


class ReadingDecodeError(ValueError):
    """Payload is not a base-10 integer."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Cannot decode sensor payload as integer: {raw!r}")


def decode_value(raw: str) -> int:
    """Parse a payload as a signed 32-bit base-10 integer after trimming whitespace."""
    text = raw.strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        raise ReadingDecodeError(raw)

    value = int(text)
    if not INT32_MIN <= value <= INT32_MAX:
        raise ReadingDecodeError(raw)
    return value


def classify_value(kind: SensorKind, value: int) -> Severity:
    """Map an integer reading to its severity zone for ``kind``."""
    if kind == SensorKind.FLAME:
        if value >= 800:
            return Severity.NORMAL
        if value >= 400:
            return Severity.WARNING
        return Severity.CRITICAL

    if kind == SensorKind.GAS:
        if value <= 150:
            return Severity.NORMAL
        if value <= 500:
            return Severity.WARNING
        return Severity.CRITICAL

    if kind == SensorKind.WATER:
        if value <= 100:
            return Severity.NORMAL
        if value <= 400:
            return Severity.WARNING
        return Severity.CRITICAL

    if kind == SensorKind.LIGHT:
        if value == 0:
            return Severity.ON
        if value == 1:
            return Severity.OFF
        return Severity.UNKNOWN

    raise ValueError(f"Unsupported sensor kind: {kind}")


def display_text(kind: SensorKind, severity: Severity, raw: str) -> str:
    """Status text for a classified reading."""
    if severity == Severity.UNKNOWN:
        return f"Unknown: {raw}"
    return DISPLAY_TEXT[kind][severity]


def parse_reading(kind: SensorKind, raw: str, topic: str = "") -> Reading:
    """Build a Reading, leaving ``value`` unset when the payload does not decode."""
    try:
        value = decode_value(raw)
    except ReadingDecodeError:
        value = None
    return Reading(kind=kind, raw=raw, value=value, topic=topic)


def classify_reading(reading: Reading) -> ClassifiedReading:
    """Classify a decoded reading.

    Raises:
        ReadingDecodeError: the reading carries no integer value
    """
    if reading.value is None:
        raise ReadingDecodeError(reading.raw)

    severity = classify_value(reading.kind, reading.value)
    return ClassifiedReading(
        kind=reading.kind,
        value=reading.value,
        severity=severity,
        display_text=display_text(reading.kind, severity, reading.raw)
    )


def classify(kind: SensorKind, raw: str) -> ClassifiedReading:
    """Decode and classify one payload.

    Raises:
        ReadingDecodeError: payload is not an integer
    """
    return classify_reading(parse_reading(kind, raw))


__all__ = [
    "ReadingDecodeError",
    "decode_value",
    "classify_value",
    "parse_reading",
    "classify_reading",
    "classify",
    "DISPLAY_TEXT",
]
