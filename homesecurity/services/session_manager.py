"""SessionManager service: owns the broker session and the alert pipeline.

Every inbound message runs Router -> Classifier -> Latch on a single worker
thread, and every event (state change, display update, subscription outcome,
alert) is delivered from that same thread in the order it was produced.
``connect()`` and ``disconnect()`` may be called from any thread; they change
the session state under the session lock and hand the rest to the worker.
"""

import queue
import threading
import time
from concurrent.futures import Future
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..models import (
    AlertEvent,
    DisplayUpdate,
    MonitorConfiguration,
    SessionState,
    SessionStateChange,
    SubscriptionEvent,
)
from .alert_latch import AlertLatch
from .classifier import ReadingDecodeError, classify_reading, parse_reading
from .topic_router import TopicRouter


logger = structlog.get_logger(__name__)

_STOP = object()


def _future_error(future: Future) -> Optional[BaseException]:
    """Exception a finished future carries, treating cancellation as an error."""
    if future.cancelled():
        return ConnectionAbortedError("request cancelled")
    return future.exception()


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class SessionManager:
    """Connection lifecycle and message processing for one broker session."""

    def __init__(self,
                 transport,
                 configuration: Optional[MonitorConfiguration] = None,
                 notifier=None,
                 display=None,
                 router: Optional[TopicRouter] = None):
        """Initialize the session manager and start its worker thread."""
        self.transport = transport
        self.configuration = configuration or MonitorConfiguration()
        self.router = router or TopicRouter()
        self.latch = AlertLatch(notify_on_clear=self.configuration.alerts.notify_on_clear)

        # Session state, guarded by _lock
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._attempt_id = 0
        self._subscribed = False
        self._topic_filter: Optional[str] = None
        self._subscribe_pending = False
        self._broker: Optional[Tuple[str, int]] = None
        self._connected_at: Optional[datetime] = None
        self._closed = False

        # Events produced under the lock, delivered by the worker outside it
        self._pending: List[Tuple[str, Any]] = []

        # Listeners
        self._state_callbacks: List[Callable[[SessionStateChange], None]] = []
        self._display_callbacks: List[Callable[[DisplayUpdate], None]] = []
        self._subscription_callbacks: List[Callable[[SubscriptionEvent], None]] = []
        self._alert_callbacks: List[Callable[[AlertEvent], None]] = []

        if notifier is not None:
            self.add_alert_callback(notifier.notify)
        if display is not None:
            self.add_display_callback(display.update)
            if hasattr(display, "on_state_change"):
                self.add_state_callback(display.on_state_change)

        # Counters
        self.connect_attempts = 0
        self.messages_processed = 0
        self.decode_errors = 0
        self.unrouted_messages = 0
        self.alerts_emitted = 0
        self.connections_lost = 0

        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._worker = threading.Thread(target=self._run, daemon=True, name="SessionWorker")
        self._worker.start()

    # Listener registration

    def add_state_callback(self, callback: Callable[[SessionStateChange], None]) -> None:
        self._state_callbacks.append(callback)

    def add_display_callback(self, callback: Callable[[DisplayUpdate], None]) -> None:
        self._display_callbacks.append(callback)

    def add_subscription_callback(self, callback: Callable[[SubscriptionEvent], None]) -> None:
        self._subscription_callbacks.append(callback)

    def add_alert_callback(self, callback: Callable[[AlertEvent], None]) -> None:
        self._alert_callbacks.append(callback)

    # Introspection

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def attempt_id(self) -> int:
        return self._attempt_id

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    def get_session_stats(self) -> Dict[str, Any]:
        """Get session counters and state."""
        with self._lock:
            uptime = None
            if self._connected_at and self._state == SessionState.CONNECTED:
                uptime = (datetime.now() - self._connected_at).total_seconds()

            return {
                "state": self._state.value,
                "attempt_id": self._attempt_id,
                "subscribed": self._subscribed,
                "topic_filter": self._topic_filter,
                "broker": f"{self._broker[0]}:{self._broker[1]}" if self._broker else None,
                "uptime_seconds": uptime,
                "connect_attempts": self.connect_attempts,
                "messages_processed": self.messages_processed,
                "decode_errors": self.decode_errors,
                "unrouted_messages": self.unrouted_messages,
                "alerts_emitted": self.alerts_emitted,
                "connections_lost": self.connections_lost,
                "latch": self.latch.state.snapshot(),
            }

    # Public operations

    def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> bool:
        """Start a handshake with the broker.

        Returns False without doing anything when a handshake is in flight or
        the session is already connected.
        """
        host = host or self.configuration.broker.host
        port = port or self.configuration.broker.port

        with self._lock:
            if self._closed:
                logger.warning("Session closed, ignoring connect")
                return False

            if not self._state.can_connect:
                logger.warning("Connect rejected", state=self._state.value)
                return False

            self._attempt_id += 1
            self.connect_attempts += 1
            self._broker = (host, port)
            self._subscribed = False
            self._subscribe_pending = False
            self._topic_filter = None
            self._set_state(SessionState.CONNECTING)
            attempt_id = self._attempt_id

        logger.info("Connecting to broker", host=host, port=port, attempt_id=attempt_id)
        self._submit(self._start_handshake, attempt_id, host, port)
        return True

    def subscribe(self, topic_filter: Optional[str] = None) -> None:
        """Subscribe to sensor topics; the outcome arrives as a SubscriptionEvent."""
        topic_filter = topic_filter or self.configuration.topics.topic_filter
        self._submit(self._handle_subscribe_request, topic_filter)

    def disconnect(self) -> None:
        """End the session. Safe to call repeatedly."""
        with self._lock:
            if self._state in (SessionState.IDLE, SessionState.DISCONNECTED):
                logger.debug("Disconnect ignored", state=self._state.value)
                return

            close_transport = self._state in (SessionState.CONNECTING, SessionState.CONNECTED)
            self._end_session(reason=None, unexpected=False)

        logger.info("Disconnected from broker")
        if close_transport:
            self._submit(self._close_transport)

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until everything queued so far, and anything it queued, is processed.

        A task counts as unfinished until the worker has run it and delivered
        the events it produced, so this returns only once the worker is idle.
        """
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float = 5.0) -> None:
        """Disconnect if needed and stop the worker thread."""
        self.disconnect()
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._queue.put(_STOP)
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout=timeout)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    # Worker

    def _submit(self, func: Callable[..., None], *args: Any) -> None:
        self._queue.put((func, args))

    def _run(self) -> None:
        logger.debug("Session worker started")

        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    self._deliver_pending()
                    break
                self._run_task(*item)
            finally:
                self._queue.task_done()

        logger.debug("Session worker stopped")

    def _run_task(self, func: Callable[..., None], args: Tuple[Any, ...]) -> None:
        try:
            func(*args)
        except Exception as e:
            logger.error("Error in session worker", task=getattr(func, "__name__", repr(func)), error=str(e))

        self._deliver_pending()

    def _queue_event(self, channel: str, event: Any) -> None:
        """Record an event for delivery. Caller holds the lock."""
        self._pending.append((channel, event))
        if threading.current_thread() is not self._worker:
            self._submit(self._deliver_pending)

    def _deliver_pending(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    return
                batch, self._pending = self._pending, []

            for channel, event in batch:
                self._deliver(channel, event)

    def _deliver(self, channel: str, event: Any) -> None:
        listeners = {
            "state": self._state_callbacks,
            "display": self._display_callbacks,
            "subscription": self._subscription_callbacks,
            "alert": self._alert_callbacks,
        }[channel]

        for callback in list(listeners):
            try:
                callback(event)
            except Exception as e:
                logger.warning("Error in session callback", channel=channel, error=str(e))

    # State transitions (caller holds the lock)

    def _set_state(self, new_state: SessionState, reason: Optional[str] = None, unexpected: bool = False) -> None:
        old_state = self._state
        self._state = new_state

        if new_state == SessionState.CONNECTED:
            self._connected_at = datetime.now()

        change = SessionStateChange(
            state=new_state,
            previous_state=old_state,
            reason=reason,
            unexpected=unexpected,
            attempt_id=self._attempt_id
        )
        logger.debug("Session state", transition=str(change))
        self._queue_event("state", change)

    def _end_session(self, reason: Optional[str], unexpected: bool) -> None:
        self._subscribed = False
        self._subscribe_pending = False
        self._topic_filter = None
        self._connected_at = None
        self.latch.reset()
        self._set_state(SessionState.DISCONNECTED, reason=reason, unexpected=unexpected)

    def _is_current(self, attempt_id: int, *states: SessionState) -> bool:
        return attempt_id == self._attempt_id and self._state in states

    # Handshake

    def _start_handshake(self, attempt_id: int, host: str, port: int) -> None:
        with self._lock:
            if not self._is_current(attempt_id, SessionState.CONNECTING):
                logger.debug("Skipping handshake for superseded attempt", attempt_id=attempt_id)
                return

        try:
            future = self.transport.connect(
                host,
                port,
                on_connection_lost=partial(self._on_connection_lost, attempt_id)
            )
        except Exception as e:
            self._handle_connect_result(attempt_id, e)
            return

        future.add_done_callback(
            lambda f: self._submit(self._handle_connect_result, attempt_id, _future_error(f))
        )

    def _handle_connect_result(self, attempt_id: int, error: Optional[BaseException]) -> None:
        with self._lock:
            if not self._is_current(attempt_id, SessionState.CONNECTING):
                logger.debug("Discarding stale handshake result", attempt_id=attempt_id)
                return

            if error is not None:
                reason = _describe(error)
                logger.error("Connection failed", attempt_id=attempt_id, error=reason)
                self._set_state(SessionState.FAILED, reason=reason)
                return

            self.latch.reset()
            self._set_state(SessionState.CONNECTED)
            logger.info("Connected to broker", attempt_id=attempt_id)

            if self.configuration.topics.auto_subscribe:
                self._subscribe_locked(self.configuration.topics.topic_filter)

    def _close_transport(self) -> None:
        try:
            future = self.transport.disconnect()
        except Exception as e:
            logger.warning("Transport disconnect failed", error=str(e))
            return

        def log_result(f: Future) -> None:
            error = _future_error(f)
            if error is not None:
                logger.warning("Transport disconnect failed", error=_describe(error))

        future.add_done_callback(log_result)

    def _on_connection_lost(self, attempt_id: int, reason: str) -> None:
        """Called by the transport, from its own thread, when the link drops."""
        self._submit(self._handle_connection_lost, attempt_id, reason)

    def _handle_connection_lost(self, attempt_id: int, reason: str) -> None:
        with self._lock:
            if not self._is_current(attempt_id, SessionState.CONNECTED):
                logger.debug("Ignoring connection loss for inactive attempt", attempt_id=attempt_id)
                return

            self.connections_lost += 1
            logger.warning("Connection to broker lost", attempt_id=attempt_id, reason=reason)
            self._end_session(reason=reason, unexpected=True)

    # Subscription

    def _handle_subscribe_request(self, topic_filter: str) -> None:
        with self._lock:
            if self._state != SessionState.CONNECTED:
                logger.warning("Subscribe rejected", state=self._state.value, topic_filter=topic_filter)
                self._queue_event("subscription", SubscriptionEvent(
                    topic_filter=topic_filter,
                    success=False,
                    reason=f"session is {self._state.value}",
                    attempt_id=self._attempt_id
                ))
                return

            if self._subscribed or self._subscribe_pending:
                reason = (f"already subscribed to {self._topic_filter}" if self._subscribed
                          else "subscription already in progress")
                logger.warning("Subscribe rejected", topic_filter=topic_filter, reason=reason)
                self._queue_event("subscription", SubscriptionEvent(
                    topic_filter=topic_filter,
                    success=False,
                    reason=reason,
                    attempt_id=self._attempt_id
                ))
                return

            self._subscribe_locked(topic_filter)

    def _subscribe_locked(self, topic_filter: str) -> None:
        """Request the session's single subscription. Caller holds the lock."""
        attempt_id = self._attempt_id
        self._subscribe_pending = True
        try:
            future = self.transport.subscribe(topic_filter, partial(self._on_message, attempt_id))
        except Exception as e:
            self._handle_subscribe_result(attempt_id, topic_filter, e)
            return

        future.add_done_callback(
            lambda f: self._submit(self._handle_subscribe_result, attempt_id, topic_filter, _future_error(f))
        )

    def _handle_subscribe_result(self, attempt_id: int, topic_filter: str, error: Optional[BaseException]) -> None:
        with self._lock:
            if not self._is_current(attempt_id, SessionState.CONNECTED):
                logger.debug("Discarding stale subscribe result", attempt_id=attempt_id)
                return

            self._subscribe_pending = False
            if error is not None:
                reason = _describe(error)
                logger.error("Subscribe failed", topic_filter=topic_filter, error=reason)
                self._queue_event("subscription", SubscriptionEvent(
                    topic_filter=topic_filter,
                    success=False,
                    reason=reason,
                    attempt_id=attempt_id
                ))
                return

            self._subscribed = True
            self._topic_filter = topic_filter
            logger.info("Subscribed", topic_filter=topic_filter)
            self._queue_event("subscription", SubscriptionEvent(
                topic_filter=topic_filter,
                success=True,
                attempt_id=attempt_id
            ))

    # Message processing

    def _on_message(self, attempt_id: int, topic: str, payload: bytes) -> None:
        """Called by the transport, from its own thread, for every message."""
        self._submit(self._process_message, attempt_id, topic, payload)

    def _process_message(self, attempt_id: int, topic: str, payload: bytes) -> None:
        with self._lock:
            if not self._is_current(attempt_id, SessionState.CONNECTED):
                logger.debug("Dropping message for inactive attempt", topic=topic, attempt_id=attempt_id)
                return

            if isinstance(payload, (bytes, bytearray)):
                text = bytes(payload).decode("utf-8", errors="replace")
            else:
                text = str(payload)

            self.messages_processed += 1
            logger.debug("Message received", topic=topic, payload=text)

            kind = self.router.route(topic)
            if kind is None:
                self.unrouted_messages += 1
                logger.info("Dropping unrouted message", topic=topic)
                self._queue_event("display", DisplayUpdate.unrouted(topic, text))
                return

            reading = parse_reading(kind, text, topic)
            try:
                classified = classify_reading(reading)
            except ReadingDecodeError as e:
                self.decode_errors += 1
                logger.warning("Could not decode sensor payload", kind=kind.value, raw=e.raw)
                self._queue_event("display", DisplayUpdate.decode_error(kind, text, topic))
                return

            self._queue_event("display", DisplayUpdate.from_classified(classified, topic))

            if not kind.is_emergency_capable:
                return

            alert = self.latch.update(kind, classified.severity, classified.value)
            if alert is not None:
                self.alerts_emitted += 1
                logger.warning("Emergency alert", alert=alert.to_log_entry(), value=classified.value)
                self._queue_event("alert", alert)


__all__ = ["SessionManager"]
