"""Edge-triggered alert latch.

Turns a stream of severity classifications per sensor kind into alert events,
firing once when a kind enters its critical zone and staying quiet while the
condition persists.
"""

from enum import Enum
from typing import Optional

import structlog

from ..models import AlertEvent, LatchState, SensorKind, Severity


logger = structlog.get_logger(__name__)


class LatchTransition(str, Enum):
    """Edge of the ``severity == critical`` predicate."""

    ONSET = "onset"
    CLEARED = "cleared"


class AlertLatch:
    """Edge detector over the critical predicate, one latch per emergency kind."""

    def __init__(self, state: Optional[LatchState] = None, notify_on_clear: bool = False):
        self.state = state or LatchState()
        self.notify_on_clear = notify_on_clear

    def transition(self, kind: SensorKind, severity: Severity) -> Optional[LatchTransition]:
        """Record ``severity`` for ``kind`` and return the edge it produced, if any."""
        if not kind.is_emergency_capable:
            raise ValueError(f"{kind.value} readings do not pass through the alert latch")

        was_latched = self.state.is_latched(kind)
        is_critical = severity.is_critical
        self.state.set(kind, is_critical)

        if is_critical and not was_latched:
            return LatchTransition.ONSET
        if was_latched and not is_critical:
            return LatchTransition.CLEARED
        return None

    def update(self, kind: SensorKind, severity: Severity, value: Optional[int] = None) -> Optional[AlertEvent]:
        """Feed one classification and return the alert to deliver, if any."""
        edge = self.transition(kind, severity)

        if edge == LatchTransition.ONSET:
            logger.info("Alert latched", kind=kind.value, value=value)
            return AlertEvent.create_onset_alert(kind, value)

        if edge == LatchTransition.CLEARED:
            logger.info("Alert latch cleared", kind=kind.value, value=value)
            if self.notify_on_clear:
                return AlertEvent.create_cleared_alert(kind, value)

        return None

    def reset(self) -> None:
        """Clear every latch."""
        self.state.reset()

    def is_latched(self, kind: SensorKind) -> bool:
        return self.state.is_latched(kind)


__all__ = ["AlertLatch", "LatchTransition"]
