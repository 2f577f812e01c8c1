"""
Reconnect Supervision for the Broker Session.

Watches session state changes and, when the transport drops the link
unexpectedly, reconnects with exponential backoff. A disconnect the caller
asked for never triggers a reconnect.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from ...models import SessionState, SessionStateChange
from ...models.monitor_configuration import ReconnectSettings

logger = structlog.get_logger(__name__)


@dataclass
class ReconnectAttempt:
    """Individual reconnect attempt record."""
    attempt_number: int
    timestamp: datetime
    delay_s: float
    success: Optional[bool] = None
    error_message: Optional[str] = None


@dataclass
class ReconnectStats:
    """Reconnect statistics."""
    total_attempts: int = 0
    successful_reconnects: int = 0
    failed_attempts: int = 0
    gave_up: int = 0
    last_successful_reconnect: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    recent_attempts: List[ReconnectAttempt] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate reconnect success rate."""
        if self.total_attempts == 0:
            return 0.0
        return self.successful_reconnects / self.total_attempts


class ReconnectSupervisor:
    """
    Reconnect policy with exponential backoff.

    Registers itself as a state listener on the session. Delays start at
    ``initial_delay`` and grow by ``multiplier`` up to ``max_delay``; after
    ``max_attempts`` failed handshakes in a row the supervisor gives up until
    the next unexpected disconnect.
    """

    def __init__(
        self,
        session,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        max_attempts: int = 10,
        timer_factory: Callable[..., threading.Timer] = threading.Timer
    ):
        """
        Initialize reconnect supervisor.

        Args:
            session: SessionManager to supervise
            initial_delay: Initial retry delay in seconds
            max_delay: Maximum retry delay in seconds
            multiplier: Backoff multiplier
            max_attempts: Maximum consecutive attempts per outage
            timer_factory: Creates the timer that fires each attempt
        """
        self.session = session
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.max_attempts = max_attempts
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._reconnecting = False
        self._retry_count = 0
        self._current_delay = initial_delay
        self._scheduled_delay = initial_delay
        self._timer: Optional[threading.Timer] = None
        self._current_attempt: Optional[ReconnectAttempt] = None
        self._stopped = False
        self._stats = ReconnectStats()

        session.add_state_callback(self._on_state_change)
        logger.info("ReconnectSupervisor initialized", max_attempts=max_attempts)

    @classmethod
    def from_settings(cls, session, settings: ReconnectSettings) -> "ReconnectSupervisor":
        return cls(
            session,
            initial_delay=settings.initial_delay_s,
            max_delay=settings.max_delay_s,
            multiplier=settings.multiplier,
            max_attempts=settings.max_attempts
        )

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnecting

    @property
    def next_delay(self) -> float:
        return self._current_delay

    def get_stats(self) -> ReconnectStats:
        """Get a copy of the reconnect statistics."""
        with self._lock:
            return ReconnectStats(
                total_attempts=self._stats.total_attempts,
                successful_reconnects=self._stats.successful_reconnects,
                failed_attempts=self._stats.failed_attempts,
                gave_up=self._stats.gave_up,
                last_successful_reconnect=self._stats.last_successful_reconnect,
                last_failure=self._stats.last_failure,
                recent_attempts=self._stats.recent_attempts.copy()
            )

    def cancel(self) -> None:
        """Abandon the current outage without stopping supervision."""
        with self._lock:
            self._cancel_timer()
            self._reconnecting = False
            self._current_attempt = None

    def stop(self) -> None:
        """Stop supervising the session."""
        with self._lock:
            self._stopped = True
            self.cancel()

    def _on_state_change(self, change: SessionStateChange) -> None:
        with self._lock:
            if self._stopped:
                return

            if change.is_unexpected_disconnect:
                logger.warning("Link lost, scheduling reconnect", reason=change.reason)
                self._reconnecting = True
                self._retry_count = 0
                self._current_delay = self.initial_delay
                self._schedule()

            elif not self._reconnecting:
                return

            elif change.state == SessionState.CONNECTED:
                self._connection_successful()

            elif change.state == SessionState.FAILED:
                self._connection_failed(change.reason or "handshake failed")

            elif change.state == SessionState.DISCONNECTED:
                logger.info("Disconnect requested, reconnect cancelled")
                self.cancel()

    def _schedule(self) -> None:
        delay = self._current_delay
        self._scheduled_delay = delay
        self._cancel_timer()

        self._timer = self._timer_factory(delay, self._attempt)
        self._timer.daemon = True
        self._timer.start()

        logger.info("Reconnect scheduled", delay_s=round(delay, 2), attempt=self._retry_count + 1)

        self._current_delay = min(self._current_delay * self.multiplier, self.max_delay)

    def _attempt(self) -> None:
        with self._lock:
            if not self._reconnecting or self._stopped:
                return

            self._timer = None
            self._retry_count += 1
            attempt = ReconnectAttempt(
                attempt_number=self._retry_count,
                timestamp=datetime.now(),
                delay_s=self._scheduled_delay
            )
            self._record_attempt(attempt)
            self._current_attempt = attempt

        logger.info("Reconnect attempt", attempt=attempt.attempt_number, max_attempts=self.max_attempts)

        if not self.session.connect():
            logger.debug("Reconnect attempt not started, session busy")

    def _connection_successful(self) -> None:
        if self._current_attempt is not None:
            self._current_attempt.success = True
        self._stats.successful_reconnects += 1
        self._stats.last_successful_reconnect = datetime.now()

        logger.info("Reconnected", attempts=self._retry_count)

        self._reconnecting = False
        self._retry_count = 0
        self._current_delay = self.initial_delay
        self._current_attempt = None

    def _connection_failed(self, error_message: str) -> None:
        if self._current_attempt is not None:
            self._current_attempt.success = False
            self._current_attempt.error_message = error_message
        self._stats.failed_attempts += 1
        self._stats.last_failure = datetime.now()
        self._current_attempt = None

        if self._retry_count >= self.max_attempts:
            logger.error("Reconnect failed, giving up", attempts=self._retry_count, error=error_message)
            self._stats.gave_up += 1
            self._reconnecting = False
            return

        logger.warning("Reconnect attempt failed", attempt=self._retry_count, error=error_message)
        self._schedule()

    def _record_attempt(self, attempt: ReconnectAttempt) -> None:
        self._stats.total_attempts += 1
        self._stats.recent_attempts.append(attempt)

        # Keep only recent attempts (last 20)
        if len(self._stats.recent_attempts) > 20:
            self._stats.recent_attempts.pop(0)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def __str__(self) -> str:
        """String representation of the supervisor."""
        return (
            f"ReconnectSupervisor(reconnecting={self._reconnecting}, "
            f"attempts={self._stats.total_attempts}, success_rate={self._stats.success_rate:.2%})"
        )


__all__ = [
    'ReconnectSupervisor',
    'ReconnectStats',
    'ReconnectAttempt',
]
