"""Configuration schema for the relay hub and capture client.

Defines Pydantic models for loading and validating configuration from YAML
files and environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ServerConfig(BaseModel):
    """WebSocket relay server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=3000, ge=0, le=65535, description="Bind port (0 = ephemeral)")
    max_connections: int = Field(default=200, ge=1, description="Maximum concurrent connections")
    max_message_bytes: int = Field(
        default=2**20,
        ge=4096,
        description="Maximum size of a single inbound WebSocket message",
    )
    send_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Time limit for delivering one message to one receiver",
    )


class HealthConfig(BaseModel):
    """HTTP health check endpoint configuration."""

    enabled: bool = Field(default=True, description="Serve /health and /rooms over HTTP")
    host: str = Field(default="127.0.0.1", description="Health endpoint bind address")
    port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Health endpoint port (defaults to server port + 1)",
    )


class VADConfig(BaseModel):
    """Energy-threshold voice activity detection configuration."""

    threshold_db: float = Field(
        default=-45.0,
        le=0.0,
        description="Energy above this level (dBFS) counts as voice",
    )
    padding_ms: float = Field(
        default=300.0,
        ge=0.0,
        description="Hold-over after the last loud block before classifying silence",
    )


class MeterConfig(BaseModel):
    """Energy meter configuration."""

    floor_db: float = Field(
        default=-100.0,
        lt=0.0,
        description="Energy reported for silent (all-zero) blocks",
    )
    display_floor_db: float = Field(
        default=-60.0,
        description="Energy that maps to an empty meter",
    )
    display_scale: float = Field(
        default=2.5,
        gt=0.0,
        description="Meter percent per dB above display_floor_db",
    )


class CaptureConfig(BaseModel):
    """Microphone capture configuration."""

    sample_rate: int = Field(default=44100, description="Capture sample rate in Hz")
    block_size: int = Field(default=1024, ge=64, le=16384, description="Samples per block")
    channels: int = Field(default=1, description="Capture channels (mono only)")
    device: str | int | None = Field(default=None, description="Input device name or index")

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: int) -> int:
        """Validate that sample rate is a common audio device rate."""
        valid_rates = [8000, 16000, 22050, 24000, 32000, 44100, 48000]
        if v not in valid_rates:
            raise ValueError(f"Capture sample_rate must be one of {valid_rates}, got {v}")
        return v

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v: int) -> int:
        """Audio blocks carry a single mono channel."""
        if v != 1:
            raise ValueError(f"Capture channels must be 1 (mono), got {v}")
        return v


class PlaybackConfig(BaseModel):
    """Speaker playback configuration."""

    sample_rate: int = Field(default=44100, ge=8000, le=192000, description="Playback rate in Hz")
    device: str | int | None = Field(default=None, description="Output device name or index")


class ClientConfig(BaseModel):
    """Configuration for a capture/playback participant."""

    server_url: str = Field(
        default="ws://localhost:3000",
        description="Relay server WebSocket URL",
    )
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    vad: VADConfig = Field(default_factory=VADConfig)
    meter: MeterConfig = Field(default_factory=MeterConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Validate WebSocket URL scheme."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"server_url must start with ws:// or wss://, got '{v}'")
        return v

    @model_validator(mode="after")
    def align_playback_rate(self) -> "ClientConfig":
        """Relayed blocks carry no rate, so playback defaults to the capture rate."""
        if "sample_rate" not in self.playback.model_fields_set:
            self.playback.sample_rate = self.capture.sample_rate
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build client configuration from defaults, environment and overrides.

        Args:
            **overrides: Top-level field values that take precedence

        Returns:
            Validated client configuration
        """
        data: dict[str, Any] = {}
        if server_url := os.getenv("VADRELAY_URL"):
            data["server_url"] = server_url
        if threshold := os.getenv("VADRELAY_VAD_THRESHOLD_DB"):
            data.setdefault("vad", {})["threshold_db"] = float(threshold)
        if padding := os.getenv("VADRELAY_VAD_PADDING_MS"):
            data.setdefault("vad", {})["padding_ms"] = float(padding)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)


class RelayConfig(BaseModel):
    """Root relay server configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level name."""
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got '{v}'")
        return level

    @property
    def health_port(self) -> int:
        """Resolved health endpoint port."""
        if self.health.port is not None:
            return self.health.port
        if self.server.port == 0:
            return 0
        return self.server.port + 1

    @classmethod
    def from_yaml(cls, path: Path) -> "RelayConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(_apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "RelayConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        logging.getLogger(__name__).debug(
            "No configuration file, using defaults", extra={"path": str(path)}
        )
        return cls.model_validate(_apply_env_overrides({}))


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply PORT / HOST / LOG_LEVEL environment overrides to raw config data."""
    if port := os.getenv("PORT"):
        data.setdefault("server", {})["port"] = int(port)

    if host := os.getenv("HOST"):
        data.setdefault("server", {})["host"] = host

    if log_level := os.getenv("LOG_LEVEL"):
        data["log_level"] = log_level

    return data
