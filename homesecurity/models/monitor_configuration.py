"""MonitorConfiguration data model for broker, topic and alert settings."""

from typing import Dict, Any
from pydantic import BaseModel, Field, field_validator, computed_field


class BrokerSettings(BaseModel):
    """MQTT broker connection settings."""

    host: str = Field(default="broker.hivemq.com", min_length=1, description="Broker hostname")
    port: int = Field(default=1883, ge=1, le=65535, description="Broker TCP port")
    client_id_prefix: str = Field(
        default="homesecurity_",
        max_length=15,
        description="Client identifier prefix, followed by 8 random hex characters"
    )
    keepalive_s: int = Field(default=60, ge=5, le=3600, description="MQTT keepalive in seconds")
    connect_timeout_s: float = Field(
        default=5.0,
        gt=0.0,
        le=120.0,
        description="Handshake timeout in seconds"
    )

    @field_validator('host')
    @classmethod
    def validate_host(cls, v: str) -> str:
        return v.strip()


class TopicSettings(BaseModel):
    """Topic layout the sensors publish under."""

    base_topic: str = Field(
        default="smarthome/security/sensors/",
        min_length=1,
        description="Prefix shared by every sensor topic"
    )
    auto_subscribe: bool = Field(
        default=True,
        description="Subscribe to the base topic as soon as the connection is acknowledged"
    )

    @field_validator('base_topic')
    @classmethod
    def validate_base_topic(cls, v: str) -> str:
        """Wildcards belong in the filter, never in the base path."""
        if "#" in v or "+" in v:
            raise ValueError("base_topic must not contain MQTT wildcards")
        return v

    @computed_field
    @property
    def topic_filter(self) -> str:
        """Single wildcard filter covering every sensor sub-topic."""
        base = self.base_topic if self.base_topic.endswith("/") else self.base_topic + "/"
        return base + "#"


class AlertSettings(BaseModel):
    """Notification policy."""

    notify_on_clear: bool = Field(
        default=False,
        description="Also notify when a kind leaves its critical zone"
    )


class ReconnectSettings(BaseModel):
    """Automatic reconnection after the transport drops the link."""

    enabled: bool = Field(default=False)
    initial_delay_s: float = Field(default=1.0, gt=0.0, le=300.0)
    max_delay_s: float = Field(default=30.0, gt=0.0, le=3600.0)
    multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    max_attempts: int = Field(default=10, ge=1, le=1000)

    def model_post_init(self, __context: Any) -> None:
        if self.max_delay_s < self.initial_delay_s:
            raise ValueError("max_delay_s must not be below initial_delay_s")


class MonitorConfiguration(BaseModel):
    """Complete monitor configuration."""

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "broker": {"host": "broker.hivemq.com", "port": 1883},
                "topics": {"base_topic": "smarthome/security/sensors/"},
                "alerts": {"notify_on_clear": False},
                "reconnect": {"enabled": True, "initial_delay_s": 1.0}
            }
        }
    }

    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    topics: TopicSettings = Field(default_factory=TopicSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)

    enable_debug_logging: bool = Field(default=False, description="Enable debug level logging")
    json_logs: bool = Field(default=False, description="Render logs as JSON lines")

    def export_dict(self) -> Dict[str, Any]:
        """Export configuration as a plain dictionary, without computed fields."""
        data = self.model_dump(mode='json')
        data["topics"].pop("topic_filter", None)
        return data
