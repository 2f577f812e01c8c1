"""Pytest configuration and fixtures."""

import sys
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from homesecurity.services import SessionManager  # noqa: E402


BASE_TOPIC = "smarthome/security/sensors/"


class FakeTransport:
    """In-memory transport. Futures resolve immediately unless told otherwise."""

    def __init__(self, auto_connect: bool = True, auto_subscribe: bool = True):
        self.auto_connect = auto_connect
        self.auto_subscribe = auto_subscribe
        self.connect_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None

        self.connect_calls: List[Tuple[str, int]] = []
        self.connect_futures: List[Future] = []
        self.subscribe_calls: List[Tuple[str, Callable[[str, bytes], None]]] = []
        self.subscribe_futures: List[Future] = []
        self.disconnect_calls = 0

        self.handlers: Dict[str, Callable[[str, bytes], None]] = {}
        self.on_connection_lost: Optional[Callable[[str], None]] = None

    def connect(self, host, port, on_connection_lost=None) -> Future:
        future: Future = Future()
        self.connect_calls.append((host, port))
        self.connect_futures.append(future)
        self.handlers = {}
        self.on_connection_lost = on_connection_lost

        if self.connect_error is not None:
            future.set_exception(self.connect_error)
        elif self.auto_connect:
            future.set_result(None)
        return future

    def subscribe(self, topic_filter, on_message) -> Future:
        future: Future = Future()
        self.subscribe_calls.append((topic_filter, on_message))
        self.subscribe_futures.append(future)

        if self.subscribe_error is not None:
            future.set_exception(self.subscribe_error)
        else:
            self.handlers[topic_filter] = on_message
            if self.auto_subscribe:
                future.set_result(None)
        return future

    def disconnect(self) -> Future:
        self.disconnect_calls += 1
        self.handlers = {}
        self.on_connection_lost = None
        future: Future = Future()
        future.set_result(None)
        return future

    def deliver(self, topic: str, payload) -> None:
        """Hand a message to every active subscription, as the network thread would."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        for handler in list(self.handlers.values()):
            handler(topic, payload)

    def deliver_sensor(self, kind: str, payload) -> None:
        self.deliver(BASE_TOPIC + kind, payload)

    def lose_connection(self, reason: str = "keepalive timeout") -> None:
        callback = self.on_connection_lost
        self.handlers = {}
        self.on_connection_lost = None
        if callback is not None:
            callback(reason)


class EventRecorder:
    """Collects everything a session emits."""

    def __init__(self, session: SessionManager):
        self.states = []
        self.displays = []
        self.subscriptions = []
        self.alerts = []

        session.add_state_callback(self.states.append)
        session.add_display_callback(self.displays.append)
        session.add_subscription_callback(self.subscriptions.append)
        session.add_alert_callback(self.alerts.append)

    @property
    def state_values(self):
        return [change.state.value for change in self.states]

    def texts_for(self, kind):
        return [update.text for update in self.displays if update.kind == kind]


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def session(fake_transport):
    manager = SessionManager(fake_transport)
    yield manager
    manager.close()


@pytest.fixture
def recorder(session):
    return EventRecorder(session)


@pytest.fixture
def connected_session(session, recorder, fake_transport):
    """Session that has connected and subscribed."""
    assert session.connect()
    assert session.flush()
    return session



@pytest.fixture
def transport_factory():
    """Build extra transports, e.g. ``transport_factory(auto_connect=False)``."""
    return FakeTransport


@pytest.fixture
def recorder_factory():
    return EventRecorder
