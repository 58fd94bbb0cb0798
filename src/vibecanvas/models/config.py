"""Application configuration model."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from vibecanvas.utils.paths import default_config_path
from vibecanvas.utils.persistence import PydanticPersistence

DEFAULT_SERVER_ADDRESS = "ws://127.0.0.1:12345"


class AppConfig(BaseModel):
    """Application configuration and settings."""

    # Device server
    server_address: str = Field(
        default=DEFAULT_SERVER_ADDRESS,
        description="Websocket address of the Buttplug device server",
    )
    client_name: str = Field(default="VibeCanvas", description="Name announced to the device server")
    connect_timeout_s: float = Field(default=5.0, gt=0, description="Handshake timeout (seconds)")
    request_timeout_s: float = Field(
        default=2.0, gt=0, description="Timeout for a single server request (seconds)"
    )

    # Discovery
    scan_window_s: float = Field(default=5.0, gt=0, description="How long a device scan runs (seconds)")

    # Playback
    tick_interval_ms: float = Field(
        default=30.0,
        gt=0,
        description="Time between output updates (ms). Lower is smoother but sends more commands",
    )

    @field_validator("server_address")
    @classmethod
    def validate_server_address(cls, value: str) -> str:
        """Require a websocket URL."""
        if not value.startswith(("ws://", "wss://")):
            raise ValueError("must start with ws:// or wss://")
        return value

    @classmethod
    def load_or_default(cls, path: Path | None = None) -> "AppConfig":
        """
        Load config from file or return default.

        Args:
            path: Path to config file. If None, uses ~/.vibecanvas/config.json.

        Raises:
            ConfigFileInvalidError: If config file has invalid JSON syntax
            ConfigValidationError: If config values fail validation
        """
        return PydanticPersistence.load_or_default(path or default_config_path(), cls)

    def save(self, path: Path | None = None) -> None:
        """Save config to file."""
        PydanticPersistence.save_json(self, path or default_config_path())
