"""
Configuration for the F1 stats dashboard.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file
load_dotenv()


@dataclass
class Config:
    """Configuration with environment variable support."""

    # OpenF1 credentials - loaded from .env file
    openf1_username: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENF1_USERNAME")
    )
    openf1_password: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENF1_PASSWORD")
    )
    openf1_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENF1_API_KEY")
    )

    # Endpoints
    api_url: str = field(
        default_factory=lambda: os.getenv("OPENF1_API_URL", "https://api.openf1.org/v1")
    )
    token_url: str = field(
        default_factory=lambda: os.getenv("OPENF1_TOKEN_URL", "https://api.openf1.org/token")
    )
    mqtt_host: str = field(
        default_factory=lambda: os.getenv("OPENF1_MQTT_HOST", "mqtt.openf1.org")
    )
    mqtt_port: int = field(
        default_factory=lambda: int(os.getenv("OPENF1_MQTT_PORT", "8883"))
    )
    mqtt_topic: str = "v1/location"

    # Request queue
    request_interval_sec: float = 0.4  # 350ms upstream limit + 50ms buffer
    request_timeout_sec: float = 30.0
    max_retries: int = 3
    max_rate_limit_retries: int = 5
    rate_limit_backoff_sec: float = 2.0  # Scaled by the 429 count
    retry_delay_sec: float = 1.0
    token_expiry_margin_sec: float = 10.0

    # Live playback
    playback_delay_sec: float = 3.0  # Stay behind real time for interpolation
    trail_length: int = 150
    tick_rate_hz: float = 30.0
    lap_poll_interval_sec: float = 30.0
    session_refresh_interval_sec: float = 60.0
    live_stream_enabled: bool = True

    # Cache
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DATA_DIR", "./data"))
    )

    # Dashboard server
    server_enabled: bool = True
    server_host: str = "localhost"
    server_port: int = 8080

    def __post_init__(self):
        """Ensure directories exist."""
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def has_credentials(self) -> bool:
        """Whether a username/password pair is configured."""
        return bool(self.openf1_username and self.openf1_password)
