"""Main CLI application orchestrating all components."""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Dict, Any

import structlog
from rich.live import Live

from ..models import MonitorConfiguration, SessionStateChange, SubscriptionEvent
from ..services import SessionManager
from ..lib.config import ConfigManager, ConfigurationError, save_config_to_file
from ..lib.display import ConsoleDisplay
from ..lib.mqtt_transport import MqttTransport, ReconnectSupervisor
from ..lib.notifier import ConsoleNotifier, LogNotifier


logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def configure_logging(debug: bool = False, json_logs: bool = False) -> None:
    """Configure structlog for console or JSON output on stderr."""
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if debug else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_configuration(args: argparse.Namespace) -> MonitorConfiguration:
    """Load the configuration file (or defaults) and apply command line overrides."""
    manager = ConfigManager(args.config or DEFAULT_CONFIG_PATH)

    if args.config:
        manager.load_config()
    else:
        manager.load_default_config()

    overrides: Dict[str, Any] = {}
    if args.broker_host:
        overrides.setdefault("broker", {})["host"] = args.broker_host
    if args.broker_port:
        overrides.setdefault("broker", {})["port"] = args.broker_port
    if args.base_topic:
        overrides.setdefault("topics", {})["base_topic"] = args.base_topic
    if args.auto_reconnect:
        overrides.setdefault("reconnect", {})["enabled"] = True
    if args.debug:
        overrides["enable_debug_logging"] = True
    if args.json_logs:
        overrides["json_logs"] = True

    return manager.merge_config(overrides)


class HomeSecurityApplication:
    """Main application orchestrating all components."""

    def __init__(self, configuration: MonitorConfiguration):
        self.configuration = configuration

        self.transport: Optional[MqttTransport] = None
        self.session: Optional[SessionManager] = None
        self.supervisor: Optional[ReconnectSupervisor] = None
        self.display: Optional[ConsoleDisplay] = None
        self.notifier: Optional[ConsoleNotifier] = None
        self.log_notifier: Optional[LogNotifier] = None

        self.is_running = False
        self._shutdown = threading.Event()

    def initialize(self, enable_display: bool = True) -> None:
        """Create and wire all components."""
        logger.info("Initializing home security monitor")

        self.transport = MqttTransport.from_configuration(self.configuration)
        self.display = ConsoleDisplay() if enable_display else None
        self.notifier = ConsoleNotifier()
        self.log_notifier = LogNotifier()

        self.session = SessionManager(
            self.transport,
            configuration=self.configuration,
            notifier=self.notifier,
            display=self.display
        )
        self.session.add_alert_callback(self.log_notifier.notify)
        self.session.add_state_callback(self._on_state_change)
        self.session.add_subscription_callback(self._on_subscription)

        if self.configuration.reconnect.enabled:
            self.supervisor = ReconnectSupervisor.from_settings(self.session, self.configuration.reconnect)

        logger.info("Application initialization completed",
                    broker=self.configuration.broker.host,
                    topic_filter=self.configuration.topics.topic_filter,
                    auto_reconnect=self.supervisor is not None)

    def start(self) -> None:
        """Open the broker session."""
        if self.session is None:
            raise RuntimeError("Application not initialized")

        self.is_running = True
        self._setup_signal_handlers()
        self.session.connect()

    def run(self) -> None:
        """Block until a shutdown signal, rendering the display if enabled."""
        if self.display is None:
            while not self._shutdown.wait(1.0):
                pass
            return

        with Live(self.display.render(), console=self.display.console, refresh_per_second=4) as live:
            while not self._shutdown.wait(0.25):
                live.update(self.display.render())

    def stop(self) -> None:
        """Stop all components gracefully."""
        if not self.is_running:
            return

        logger.info("Stopping home security monitor")
        self.is_running = False
        self._shutdown.set()

        if self.supervisor:
            self.supervisor.stop()
        if self.session:
            self.session.close()

        logger.info("Application stopped", stats=self.get_status())

    def request_shutdown(self) -> None:
        self._shutdown.set()

    def get_status(self) -> Dict[str, Any]:
        """Get application status."""
        status: Dict[str, Any] = {
            "is_running": self.is_running,
            "session": self.session.get_session_stats() if self.session else None,
        }
        if self.supervisor:
            stats = self.supervisor.get_stats()
            status["reconnect"] = {
                "total_attempts": stats.total_attempts,
                "successful_reconnects": stats.successful_reconnects,
                "gave_up": stats.gave_up,
            }
        if self.notifier:
            status["active_alerts"] = [alert.alert_id for alert in self.notifier.active_alerts()]
        return status

    def _setup_signal_handlers(self) -> None:
        def signal_handler(sig, frame):
            logger.info("Received shutdown signal", signal=sig)
            self.request_shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _on_state_change(self, change: SessionStateChange) -> None:
        if self.display is None:
            logger.info("Session state", state=change.state.value, reason=change.reason)

    def _on_subscription(self, event: SubscriptionEvent) -> None:
        if not event.success:
            logger.error("Not receiving sensor readings", topic_filter=event.topic_filter, reason=event.reason)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Home Security Monitor - MQTT sensor status and emergency alerts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  home-security-monitor                               # Default public broker
  home-security-monitor --config config.yaml          # Load specific configuration
  home-security-monitor --broker-host localhost       # Local broker
  home-security-monitor --auto-reconnect --no-display # Headless, log only
  home-security-monitor --export-config config.yaml   # Export effective config and exit
        """
    )

    parser.add_argument("--config", type=str, help="Path to YAML configuration file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Render logs as JSON lines")
    parser.add_argument("--broker-host", type=str, help="Broker hostname")
    parser.add_argument("--broker-port", type=int, help="Broker port")
    parser.add_argument("--base-topic", type=str, help="Sensor base topic")
    parser.add_argument("--auto-reconnect", action="store_true",
                        help="Reconnect with backoff after an unexpected disconnect")
    parser.add_argument("--no-display", action="store_true", help="Disable the terminal status table")
    parser.add_argument("--export-config", type=str,
                        help="Export the effective configuration to the given path and exit")

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = create_parser().parse_args(argv)

    configure_logging(debug=args.debug, json_logs=args.json_logs)

    try:
        configuration = build_configuration(args)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        return 1

    if configuration.enable_debug_logging != args.debug or configuration.json_logs != args.json_logs:
        configure_logging(debug=configuration.enable_debug_logging, json_logs=configuration.json_logs)

    if args.export_config:
        try:
            save_config_to_file(configuration, Path(args.export_config))
        except ConfigurationError as e:
            logger.error("Failed to export configuration", error=str(e))
            return 1
        logger.info("Configuration exported successfully", path=args.export_config)
        return 0

    app = HomeSecurityApplication(configuration)

    try:
        app.initialize(enable_display=not args.no_display)
        app.start()
        app.run()
        return 0
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
        return 0
    finally:
        app.stop()


if __name__ == "__main__":
    sys.exit(main())
