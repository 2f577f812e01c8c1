"""
CLI Interface for the MQTT Transport Library.

Bench tools for a sensor network: publish a single reading the way a sensor
node would, or watch raw traffic under the base topic.

Usage:
    python -m homesecurity.lib.mqtt_transport publish flame 200
    python -m homesecurity.lib.mqtt_transport watch --seconds 30
    python -m homesecurity.lib.mqtt_transport check
"""

import argparse
import sys
import time
from concurrent import futures
from datetime import datetime

import paho.mqtt.client as mqtt
import paho.mqtt.publish as publish

from ...models import MonitorConfiguration, SensorKind
from ...models.monitor_configuration import TopicSettings
from . import MqttTransport, TransportError


def sensor_topic(base_topic: str, kind: SensorKind) -> str:
    """Topic a sensor of ``kind`` publishes on."""
    base = base_topic if base_topic.endswith("/") else base_topic + "/"
    return base + kind.value


def publish_reading(args: argparse.Namespace) -> int:
    """Publish one reading."""
    kind = SensorKind(args.kind)
    topic = sensor_topic(args.base_topic, kind)

    try:
        publish.single(topic, payload=args.value, hostname=args.host, port=args.port)
    except Exception as e:
        print(f"❌ FAIL: could not publish to {args.host}:{args.port} - {e}")
        return 1

    print(f"✅ Published {args.value!r} to {topic}")
    return 0


def check_connection(args: argparse.Namespace) -> int:
    """Connect, subscribe and disconnect using the transport."""
    print(f"=== MQTT Connection Test: {args.host}:{args.port} ===")
    transport = MqttTransport()
    topic_filter = TopicSettings(base_topic=args.base_topic).topic_filter

    try:
        transport.connect(args.host, args.port).result(timeout=args.timeout)
        print(f"✅ PASS: connected as {transport.client_id}")

        transport.subscribe(topic_filter, lambda topic, payload: None).result(timeout=args.timeout)
        print(f"✅ PASS: subscribed to {topic_filter}")
        return 0

    except TransportError as e:
        print(f"❌ FAIL: {e}")
        return 1
    except futures.TimeoutError:
        print(f"❌ FAIL: no answer within {args.timeout}s")
        return 1
    finally:
        transport.disconnect()


def watch_topics(args: argparse.Namespace) -> int:
    """Print raw messages under the base topic."""
    topic_filter = TopicSettings(base_topic=args.base_topic).topic_filter

    def on_message(client, userdata, message):
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        payload = message.payload.decode("utf-8", errors="replace")
        print(f"{timestamp} {message.topic} {payload}")

    def on_connect(client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            print(f"❌ Connection refused: {reason_code}")
            return
        client.subscribe(topic_filter)
        print(f"Watching {topic_filter} (Ctrl+C to stop)")

    client = mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
    client.on_connect = on_connect
    client.on_message = on_message

    try:
        client.connect(args.host, args.port)
    except OSError as e:
        print(f"❌ FAIL: could not connect to {args.host}:{args.port} - {e}")
        return 1

    client.loop_start()
    try:
        deadline = time.monotonic() + args.seconds if args.seconds else None
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.2)
    except KeyboardInterrupt:
        print()
    finally:
        client.disconnect()
        client.loop_stop()

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    defaults = MonitorConfiguration()

    parser = argparse.ArgumentParser(
        description="Home security MQTT bench tools",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--host", default=defaults.broker.host, help="Broker hostname")
    parser.add_argument("--port", type=int, default=defaults.broker.port, help="Broker port")
    parser.add_argument("--base-topic", default=defaults.topics.base_topic, help="Sensor base topic")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    publish_parser = subparsers.add_parser("publish", help="Publish one sensor reading")
    publish_parser.add_argument("kind", choices=[kind.value for kind in SensorKind])
    publish_parser.add_argument("value", help="Payload, normally an integer")

    watch_parser = subparsers.add_parser("watch", help="Print raw sensor traffic")
    watch_parser.add_argument("--seconds", type=float, default=0.0, help="Stop after N seconds (0 = forever)")

    check_parser = subparsers.add_parser("check", help="Test connect and subscribe")
    check_parser.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait per step")

    return parser


def main() -> int:
    parser = create_parser()
    args = parser.parse_args()

    commands = {
        "publish": publish_reading,
        "watch": watch_topics,
        "check": check_connection,
    }

    if args.command not in commands:
        parser.print_help()
        return 1

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
