"""
MQTT Transport Library for the Home Security Sensor Network.

This library wraps paho-mqtt behind the small asynchronous contract the
session manager relies on. Every operation returns a
``concurrent.futures.Future`` resolved from the paho network thread.

Classes:
    MqttTransport: Broker connection, subscription and message delivery
    ReconnectSupervisor: Reconnect with exponential backoff after link loss

Features:
    - MQTT 3.1.1, one fresh client (and client id) per connection
    - Handshake timeout and refused connections surface as TransportError
    - Unexpected link loss reported once per connection, never for a
      disconnect the caller asked for
    - Callbacks from superseded clients are ignored
"""

import threading
import uuid
from concurrent.futures import Future
from typing import Callable, Dict, Optional, Tuple

import paho.mqtt.client as mqtt
import structlog

from ...models import MonitorConfiguration
from .connection import ReconnectSupervisor, ReconnectStats, ReconnectAttempt


logger = structlog.get_logger(__name__)

MessageHandler = Callable[[str, bytes], None]


class TransportError(Exception):
    """Raised (through futures) when the broker refuses or drops a request."""
    pass


def _resolved(result=None) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future


def _failed(error: Exception) -> Future:
    future: Future = Future()
    future.set_exception(error)
    return future


def _settle(future: Optional[Future], error: Optional[Exception] = None) -> None:
    """Resolve ``future`` unless something already did."""
    if future is None or future.done():
        return
    if error is None:
        future.set_result(None)
    else:
        future.set_exception(error)


class MqttTransport:
    """
    paho-mqtt based transport.

    Thread-safe; callbacks handed in by the caller are invoked from the paho
    network thread and must not block.
    """

    def __init__(self,
                 client_id_prefix: str = "homesecurity_",
                 keepalive_s: int = 60,
                 connect_timeout_s: float = 5.0):
        """
        Initialize the transport.

        Args:
            client_id_prefix: Client identifier prefix, 8 random hex chars are appended
            keepalive_s: MQTT keepalive interval in seconds
            connect_timeout_s: Handshake timeout in seconds
        """
        self.client_id_prefix = client_id_prefix
        self.keepalive_s = keepalive_s
        self.connect_timeout_s = connect_timeout_s

        self._lock = threading.RLock()
        self._client: Optional[mqtt.Client] = None
        self._client_id: Optional[str] = None
        self._connect_future: Optional[Future] = None
        self._subscribe_futures: Dict[int, Tuple[Future, str]] = {}
        self._closing: Dict[mqtt.Client, Future] = {}
        self._message_handlers: Dict[str, MessageHandler] = {}
        self._on_connection_lost: Optional[Callable[[str], None]] = None

    @classmethod
    def from_configuration(cls, configuration: MonitorConfiguration) -> "MqttTransport":
        broker = configuration.broker
        return cls(
            client_id_prefix=broker.client_id_prefix,
            keepalive_s=broker.keepalive_s,
            connect_timeout_s=broker.connect_timeout_s
        )

    @property
    def client_id(self) -> Optional[str]:
        return self._client_id

    def is_connected(self) -> bool:
        with self._lock:
            return self._client is not None and self._client.is_connected()

    def connect(self,
                host: str,
                port: int,
                on_connection_lost: Optional[Callable[[str], None]] = None) -> Future:
        """
        Open a new connection, discarding any previous one.

        Args:
            host: Broker hostname
            port: Broker port
            on_connection_lost: Called with a reason if the link drops after
                the handshake succeeded

        Returns:
            Future resolved once the broker acknowledges the connection
        """
        self.disconnect()

        future: Future = Future()
        client_id = f"{self.client_id_prefix}{uuid.uuid4().hex[:8]}"

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311
        )
        client.connect_timeout = self.connect_timeout_s
        client.on_connect = self._handle_connect
        client.on_connect_fail = self._handle_connect_fail
        client.on_disconnect = self._handle_disconnect
        client.on_subscribe = self._handle_subscribe
        client.on_message = self._handle_message

        with self._lock:
            self._client = client
            self._client_id = client_id
            self._connect_future = future
            self._on_connection_lost = on_connection_lost
            self._message_handlers.clear()

        logger.debug("Opening MQTT connection", host=host, port=port, client_id=client_id)

        try:
            client.connect_async(host, port, keepalive=self.keepalive_s)
            client.loop_start()
        except Exception as e:
            with self._lock:
                if self._client is client:
                    self._client = None
                    self._connect_future = None
            _settle(future, TransportError(f"Unable to start connection: {e}"))

        return future

    def subscribe(self, topic_filter: str, on_message: MessageHandler) -> Future:
        """
        Subscribe the current connection to ``topic_filter``.

        Returns:
            Future resolved once the broker grants the subscription
        """
        with self._lock:
            client = self._client
            if client is None or not client.is_connected():
                return _failed(TransportError("Not connected"))

            future: Future = Future()
            self._message_handlers[topic_filter] = on_message
            result, mid = client.subscribe(topic_filter, qos=0)

            if result != mqtt.MQTT_ERR_SUCCESS:
                self._message_handlers.pop(topic_filter, None)
                return _failed(TransportError(mqtt.error_string(result)))

            self._subscribe_futures[mid] = (future, topic_filter)

        logger.debug("Subscribe sent", topic_filter=topic_filter, mid=mid)
        return future

    def disconnect(self) -> Future:
        """
        Close the current connection, if any.

        Returns:
            Future resolved once the client has shut down
        """
        with self._lock:
            client = self._client
            if client is None:
                return _resolved()

            self._client = None
            self._message_handlers.clear()
            _settle(self._connect_future, TransportError("Disconnect requested during handshake"))
            self._connect_future = None
            self._fail_subscriptions("Disconnect requested")

            future: Future = Future()
            self._closing[client] = future

        result = client.disconnect()
        client.loop_stop()

        with self._lock:
            self._closing.pop(client, None)
        _settle(future)

        if result not in (mqtt.MQTT_ERR_SUCCESS, mqtt.MQTT_ERR_NO_CONN):
            logger.debug("MQTT disconnect returned", result=mqtt.error_string(result))

        logger.debug("MQTT connection closed")
        return future

    def _fail_subscriptions(self, reason: str) -> None:
        for future, topic_filter in self._subscribe_futures.values():
            _settle(future, TransportError(f"{reason} before {topic_filter} was granted"))
        self._subscribe_futures.clear()

    def _drop_client(self, client: mqtt.Client) -> None:
        """Stop a client that has failed. Caller holds the lock."""
        if self._client is client:
            self._client = None
            self._message_handlers.clear()
        client.loop_stop()

    # paho callbacks, run on the network thread

    def _handle_connect(self, client, userdata, flags, reason_code, properties) -> None:
        with self._lock:
            if client is not self._client:
                return

            future = self._connect_future
            self._connect_future = None

            if reason_code.is_failure:
                logger.warning("Broker refused connection", reason=str(reason_code))
                self._drop_client(client)
                client.disconnect()
                _settle(future, TransportError(f"Connection refused: {reason_code}"))
                return

        logger.debug("Broker acknowledged connection", client_id=self._client_id)
        _settle(future)

    def _handle_connect_fail(self, client, userdata) -> None:
        with self._lock:
            if client is not self._client:
                return

            future = self._connect_future
            self._connect_future = None
            self._drop_client(client)

        logger.warning("Unable to reach broker")
        _settle(future, TransportError("Unable to reach broker"))

    def _handle_disconnect(self, client, userdata, disconnect_flags, reason_code, properties) -> None:
        with self._lock:
            closing = self._closing.pop(client, None)
            if closing is not None:
                _settle(closing)
                return

            if client is not self._client:
                return

            future = self._connect_future
            self._connect_future = None
            lost_callback = None if future is not None else self._on_connection_lost
            self._fail_subscriptions("Connection lost")
            self._drop_client(client)

        if future is not None:
            _settle(future, TransportError(f"Connection closed during handshake: {reason_code}"))
            return

        logger.warning("MQTT connection lost", reason=str(reason_code))
        if lost_callback is not None:
            lost_callback(str(reason_code))

    def _handle_subscribe(self, client, userdata, mid, reason_code_list, properties) -> None:
        with self._lock:
            if client is not self._client:
                return
            entry = self._subscribe_futures.pop(mid, None)

        if entry is None:
            return

        future, topic_filter = entry
        if any(code.is_failure for code in reason_code_list):
            with self._lock:
                self._message_handlers.pop(topic_filter, None)
            _settle(future, TransportError(f"Subscription to {topic_filter} refused"))
        else:
            _settle(future)

    def _handle_message(self, client, userdata, message) -> None:
        with self._lock:
            if client is not self._client:
                return
            handlers = list(self._message_handlers.items())

        for topic_filter, handler in handlers:
            if mqtt.topic_matches_sub(topic_filter, message.topic):
                try:
                    handler(message.topic, message.payload)
                except Exception as e:
                    logger.error("Error in message handler", topic=message.topic, error=str(e))


# Public API exports
__all__ = [
    'MqttTransport',
    'TransportError',
    'ReconnectSupervisor',
    'ReconnectStats',
    'ReconnectAttempt',
]
