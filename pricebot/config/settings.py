"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from ..core.types import DEFAULT_THRESHOLD, TrackedPair
from .pairs import DEFAULT_TRACKED_PAIRS

logger = structlog.get_logger(__name__)


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment
    env: Literal["dev", "prod"] = Field(description="Environment: dev, prod")
    log_level: str = Field(default="info", description="Log level")

    # Somnia stream
    somnia_rpc_url: str | None = Field(default=None, description="Somnia RPC URL")
    somnia_stream_address: str | None = Field(
        default=None, description="Stream contract address"
    )
    somnia_schema_id: str | None = Field(
        default=None, description="Schema identifier (bytes32 hex)"
    )
    rpc_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for a single RPC call"
    )

    # Scheduling
    poll_interval_ms: int = Field(
        default=300_000, gt=0, description="Subscriber alert poll interval"
    )
    summary_interval_ms: int = Field(
        default=600_000, ge=0, description="Admin summary interval, 0 disables"
    )

    # Telegram
    telegram_bot_token: str | None = Field(
        default=None, description="Telegram bot token"
    )
    telegram_admin_ids: list[int] = Field(
        default_factory=list, description="Telegram admin chat IDs"
    )
    telegram_base_url: str = Field(
        default="https://api.telegram.org", description="Telegram Bot API base URL"
    )

    # Subscriptions
    subscriptions_backend: Literal["json", "sqlite"] = Field(
        default="json", description="Subscription storage backend"
    )
    subscriptions_path: str = Field(
        default="./data/subscriptions.json", description="JSON subscription file"
    )
    database_path: str = Field(
        default="./bot.sqlite", description="SQLite database file"
    )
    default_threshold: float = Field(
        default=DEFAULT_THRESHOLD, gt=0, le=100, description="Initial threshold"
    )

    tracked_pairs: list[TrackedPair] = Field(
        default_factory=lambda: list(DEFAULT_TRACKED_PAIRS),
        description="Pairs to poll",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats keyword arguments, so YAML values are only fallbacks.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def stream_configured(self) -> bool:
        """True when every stream connection parameter is present."""
        return bool(
            self.somnia_rpc_url and self.somnia_stream_address and self.somnia_schema_id
        )

    @property
    def missing_stream_settings(self) -> list[str]:
        missing = []
        if not self.somnia_rpc_url:
            missing.append("SOMNIA_RPC_URL")
        if not self.somnia_stream_address:
            missing.append("SOMNIA_STREAM_ADDRESS")
        if not self.somnia_schema_id:
            missing.append("SOMNIA_SCHEMA_ID")
        return missing


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Environment variables (and .env) override values from the YAML file.

    Args:
        profile: Configuration profile name (dev, prod)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in ["dev", "prod"]:
        raise ValueError(f"Invalid profile: {profile}. Must be one of: dev, prod")

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["env"] = profile

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            stream_configured=settings.stream_configured,
            tracked_pairs=len(settings.tracked_pairs),
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
