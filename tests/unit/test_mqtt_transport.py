"""Unit tests for the paho-mqtt transport that need no broker."""

from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest

import homesecurity.lib.mqtt_transport as transport_module
from homesecurity.lib.mqtt_transport import MqttTransport, TransportError
from homesecurity.lib.mqtt_transport.__main__ import create_parser, sensor_topic
from homesecurity.models import MonitorConfiguration, SensorKind


class FakeReasonCode:
    """Stands in for paho's ReasonCode: a name and a failure flag."""

    def __init__(self, name: str = "Success", is_failure: bool = False):
        self.name = name
        self.is_failure = is_failure

    def __str__(self):
        return self.name


class FakePahoClient:
    """paho Client double. Tests play the network thread by calling ``ack``, ``drop`` etc."""

    def __init__(self, callback_api_version=None, client_id="", protocol=None):
        self.callback_api_version = callback_api_version
        self.client_id = client_id
        self.protocol = protocol
        self.connect_timeout = None
        self.connect_args = None
        self.loop_running = False
        self.connected = False
        self.subscriptions = []
        self.subscribe_result = mqtt.MQTT_ERR_SUCCESS
        self.disconnect_calls = 0
        self._next_mid = 0

    def connect_async(self, host, port, keepalive=60):
        self.connect_args = (host, port, keepalive)

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def is_connected(self):
        return self.connected

    def subscribe(self, topic, qos=0):
        self._next_mid += 1
        self.subscriptions.append((topic, qos, self._next_mid))
        return self.subscribe_result, self._next_mid

    def disconnect(self):
        self.disconnect_calls += 1
        if not self.connected:
            return mqtt.MQTT_ERR_NO_CONN
        self.connected = False
        self.on_disconnect(self, None, None, FakeReasonCode("Normal disconnection"), None)
        return mqtt.MQTT_ERR_SUCCESS

    # Network thread side

    def ack(self, reason_code=None):
        reason_code = reason_code or FakeReasonCode()
        self.connected = not reason_code.is_failure
        self.on_connect(self, None, None, reason_code, None)

    def fail_to_connect(self):
        self.on_connect_fail(self, None)

    def drop(self, reason="Keep alive timeout"):
        self.connected = False
        self.on_disconnect(self, None, None, FakeReasonCode(reason, is_failure=True), None)

    def grant(self, mid, failure=False):
        codes = [FakeReasonCode("Not authorized", is_failure=True) if failure else FakeReasonCode("Granted QoS 0")]
        self.on_subscribe(self, None, mid, codes, None)

    def publish_in(self, topic, payload):
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))


@pytest.fixture
def paho_clients(monkeypatch):
    created = []

    def client_factory(*args, **kwargs):
        client = FakePahoClient(*args, **kwargs)
        created.append(client)
        return client

    monkeypatch.setattr(transport_module.mqtt, "Client", client_factory)
    return created


@pytest.fixture
def transport():
    return MqttTransport(client_id_prefix="test_", keepalive_s=30, connect_timeout_s=2.0)


@pytest.fixture
def losses():
    return []


@pytest.fixture
def connected(transport, paho_clients, losses):
    """Transport whose handshake the broker has acknowledged."""
    future = transport.connect("broker.local", 1883, on_connection_lost=losses.append)
    paho_clients[-1].ack()
    future.result(timeout=1)
    return paho_clients[-1]


class TestMqttTransport:

    def test_from_configuration(self):
        config = MonitorConfiguration(broker={"client_id_prefix": "hs_", "keepalive_s": 30})
        transport = MqttTransport.from_configuration(config)

        assert transport.client_id_prefix == "hs_"
        assert transport.keepalive_s == 30
        assert transport.connect_timeout_s == 5.0
        assert transport.client_id is None

    def test_subscribe_without_connection_fails(self):
        transport = MqttTransport()
        future = transport.subscribe("home/#", lambda topic, payload: None)

        assert future.done()
        with pytest.raises(TransportError):
            future.result()

    def test_disconnect_without_connection_resolves(self):
        transport = MqttTransport()

        assert transport.disconnect().result(timeout=1) is None
        assert not transport.is_connected()


class TestHandshake:

    def test_connect_starts_fresh_client(self, transport, paho_clients):
        future = transport.connect("broker.local", 1884)

        client = paho_clients[0]
        assert client.client_id == transport.client_id
        assert client.client_id.startswith("test_")
        assert len(client.client_id) == len("test_") + 8
        assert client.callback_api_version == mqtt.CallbackAPIVersion.VERSION2
        assert client.protocol == mqtt.MQTTv311
        assert client.connect_timeout == 2.0
        assert client.connect_args == ("broker.local", 1884, 30)
        assert client.loop_running
        assert not future.done()

    def test_acknowledged_connection_resolves(self, transport, paho_clients):
        future = transport.connect("broker.local", 1883)
        paho_clients[0].ack()

        assert future.result(timeout=1) is None
        assert transport.is_connected()

    def test_refused_connection_fails(self, transport, paho_clients):
        future = transport.connect("broker.local", 1883)
        client = paho_clients[0]
        client.ack(FakeReasonCode("Not authorized", is_failure=True))

        with pytest.raises(TransportError, match="Connection refused: Not authorized"):
            future.result(timeout=1)
        assert not client.loop_running
        assert not transport.is_connected()

    def test_unreachable_broker_fails(self, transport, paho_clients):
        future = transport.connect("nowhere.invalid", 1883)
        paho_clients[0].fail_to_connect()

        with pytest.raises(TransportError, match="Unable to reach broker"):
            future.result(timeout=1)
        assert not paho_clients[0].loop_running

    def test_drop_during_handshake_fails_without_loss_report(self, transport, paho_clients, losses):
        future = transport.connect("broker.local", 1883, on_connection_lost=losses.append)
        paho_clients[0].drop("Server unavailable")

        with pytest.raises(TransportError, match="during handshake"):
            future.result(timeout=1)
        assert losses == []

    def test_disconnect_during_handshake_fails_connect(self, transport, paho_clients):
        future = transport.connect("broker.local", 1883)
        transport.disconnect()

        with pytest.raises(TransportError, match="Disconnect requested"):
            future.result(timeout=1)

    def test_each_connection_gets_new_client_id(self, transport, paho_clients):
        transport.connect("broker.local", 1883)
        first_id = transport.client_id
        transport.connect("broker.local", 1883)

        assert len(paho_clients) == 2
        assert transport.client_id == paho_clients[1].client_id
        assert transport.client_id != first_id


class TestConnectionLoss:

    def test_unexpected_loss_reported_once(self, transport, connected, losses):
        connected.drop("Keep alive timeout")

        assert losses == ["Keep alive timeout"]
        assert not transport.is_connected()
        assert not connected.loop_running

        connected.drop("Keep alive timeout")
        assert losses == ["Keep alive timeout"]

    def test_requested_disconnect_is_not_a_loss(self, transport, connected, losses):
        future = transport.disconnect()

        assert future.result(timeout=1) is None
        assert connected.disconnect_calls == 1
        assert not connected.loop_running
        assert losses == []

    def test_loss_fails_pending_subscription(self, transport, connected):
        future = transport.subscribe("home/#", lambda topic, payload: None)
        connected.drop()

        with pytest.raises(TransportError, match="Connection lost"):
            future.result(timeout=1)


class TestSubscriptions:

    def test_granted_subscription_delivers_matching_messages(self, transport, connected):
        received = []
        future = transport.subscribe("home/sensors/#", lambda topic, payload: received.append((topic, payload)))

        assert connected.subscriptions == [("home/sensors/#", 0, 1)]
        assert not future.done()

        connected.grant(1)
        assert future.result(timeout=1) is None

        connected.publish_in("home/sensors/gas", b"120")
        connected.publish_in("office/sensors/gas", b"999")

        assert received == [("home/sensors/gas", b"120")]

    def test_refused_subscription_fails_and_stops_delivery(self, transport, connected):
        received = []
        future = transport.subscribe("home/#", lambda topic, payload: received.append(topic))
        connected.grant(1, failure=True)

        with pytest.raises(TransportError, match="refused"):
            future.result(timeout=1)

        connected.publish_in("home/flame", b"100")
        assert received == []

    def test_subscribe_send_error_fails_immediately(self, transport, connected):
        connected.subscribe_result = mqtt.MQTT_ERR_NO_CONN
        future = transport.subscribe("home/#", lambda topic, payload: None)

        assert future.done()
        with pytest.raises(TransportError):
            future.result()

    def test_handler_errors_are_contained(self, transport, connected):
        received = []

        def failing_handler(topic, payload):
            raise RuntimeError("boom")

        transport.subscribe("home/flame", failing_handler)
        transport.subscribe("home/#", lambda topic, payload: received.append(topic))

        connected.publish_in("home/flame", b"100")

        assert received == ["home/flame"]


class TestSupersededClients:

    def test_callbacks_from_old_client_ignored(self, transport, paho_clients, connected, losses):
        received = []
        transport.subscribe("home/#", lambda topic, payload: received.append(topic))
        connected.grant(1)

        new_future = transport.connect("broker.local", 1883, on_connection_lost=losses.append)
        old_client, new_client = paho_clients

        old_client.publish_in("home/flame", b"100")
        old_client.drop()
        old_client.ack()

        assert received == []
        assert losses == []
        assert not new_future.done()

        new_client.ack()
        assert new_future.result(timeout=1) is None
        assert transport.is_connected()


class TestBenchTool:

    def test_sensor_topic(self):
        assert sensor_topic("house/sensors", SensorKind.GAS) == "house/sensors/gas"
        assert sensor_topic("house/sensors/", SensorKind.FLAME) == "house/sensors/flame"

    def test_publish_arguments(self):
        args = create_parser().parse_args(["--host", "localhost", "publish", "water", "450"])

        assert args.command == "publish"
        assert args.kind == "water"
        assert args.value == "450"
        assert args.base_topic == "smarthome/security/sensors/"
