"""Home security monitor: MQTT sensor telemetry, status display and emergency alerts."""

__version__ = "1.0.0"
