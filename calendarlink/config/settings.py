"""Settings management using Pydantic for type validation and configuration."""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "CALENDARLINK_"


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    # Console Logging
    console_enabled: bool = Field(default=True, description="Enable console logging")
    console_level: str = Field(
        default="INFO",
        description="Console log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    console_colors: bool = Field(
        default=True, description="Enable colored console output (auto-detected)"
    )

    # File Logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_level: str = Field(default="DEBUG", description="File log level")
    file_directory: Optional[str] = Field(
        default=None, description="Custom log directory (defaults to data_dir/logs)"
    )
    file_prefix: str = Field(default="calendarlink", description="Log file prefix")
    max_log_files: int = Field(default=5, description="Maximum number of log files to keep")

    # Third-party Libraries
    third_party_level: str = Field(
        default="WARNING", description="Log level for third-party libraries"
    )

    # Security / audit logging
    security_enabled: bool = Field(default=True, description="Enable security event logging")
    audit_file_enabled: bool = Field(
        default=False, description="Write the security audit trail to a rotating file"
    )

    model_config = ConfigDict(validate_assignment=True)


class CalendarLinkSettings(BaseSettings):
    """Application settings with environment variable and YAML support."""

    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)

    app_name: str = Field(default="CalendarLink", description="Application name")

    # Secret codec
    encryption_key: Optional[SecretStr] = Field(
        default=None, description="Fernet key protecting stored calendar URLs"
    )
    previous_encryption_keys: list[SecretStr] = Field(
        default_factory=list, description="Retired Fernet keys still accepted for decryption"
    )

    # URL validation
    max_url_length: int = Field(default=2048, description="Maximum calendar URL length")

    # Fetching
    connect_timeout: float = Field(default=5.0, description="Connect timeout in seconds")
    fetch_timeout: float = Field(default=8.0, description="Overall fetch deadline in seconds")
    max_feed_bytes: int = Field(
        default=5 * 1024 * 1024, description="Maximum accepted ICS body size in bytes"
    )

    # Parsing and filtering
    default_timezone: str = Field(
        default="UTC", description="Zone used for floating and unknown-TZID times"
    )
    busy_placeholder: str = Field(
        default="Busy", description="Title shown when event details are hidden"
    )
    max_occurrences_per_event: int = Field(
        default=1000, description="Upper bound on expanded occurrences of one RRULE"
    )
    max_range_days: int = Field(default=366, description="Maximum span of a requested range")

    # File Paths
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "calendarlink")
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "calendarlink"
    )

    # Web settings
    web_host: str = Field(default="127.0.0.1", description="Host address for the dev server")
    web_port: int = Field(default=8080, description="Port for the dev server")

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings, description="Logging settings"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    def __init__(self, **kwargs: Any) -> None:
        env_vars_set = {
            key[len(ENV_PREFIX) :].lower() for key in os.environ if key.startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        self._load_yaml_config()

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError  # noqa: PLC0415

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("max_feed_bytes", "max_url_length", "max_occurrences_per_event")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    def _find_config_file(self) -> Optional[Path]:
        """Find config file, checking project directory first, then user home."""
        project_root = Path(__file__).parent.parent.parent
        project_config = project_root / "config" / "config.yaml"
        if project_config.exists():
            return project_config

        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _is_overridden(self, name: str) -> bool:
        return name in self._explicit_args or name in self._env_vars_set

    def _load_yaml_config(self) -> None:
        """Load settings from YAML; explicit arguments and env vars win."""
        config_file = self._find_config_file()
        if config_file is None:
            return

        try:
            with config_file.open(encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config file {config_file}: {e}")
            return

        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring config file {config_file}: top level is not a mapping")
            return

        self._load_basic_settings(config_data)
        self._load_security_settings(config_data)
        self._load_logging_config(config_data)

        logger.debug(f"Loaded configuration from {config_file}")

    def _load_basic_settings(self, config_data: dict) -> None:
        basic_settings = [
            "app_name",
            "max_url_length",
            "connect_timeout",
            "fetch_timeout",
            "max_feed_bytes",
            "default_timezone",
            "busy_placeholder",
            "max_occurrences_per_event",
            "max_range_days",
            "web_host",
            "web_port",
        ]
        for setting in basic_settings:
            if setting in config_data and not self._is_overridden(setting):
                setattr(self, setting, config_data[setting])

    def _load_security_settings(self, config_data: dict) -> None:
        security = config_data.get("security")
        if not isinstance(security, dict):
            return

        if "encryption_key" in security and not self._is_overridden("encryption_key"):
            self.encryption_key = SecretStr(str(security["encryption_key"]))
        if "previous_encryption_keys" in security and not self._is_overridden(
            "previous_encryption_keys"
        ):
            self.previous_encryption_keys = [
                SecretStr(str(key)) for key in security["previous_encryption_keys"] or []
            ]

    def _load_logging_config(self, config_data: dict) -> None:
        logging_config = config_data.get("logging")
        if not isinstance(logging_config, dict):
            return

        for setting in LoggingSettings.model_fields:
            if setting in logging_config:
                setattr(self.logging, setting, logging_config[setting])


@lru_cache(maxsize=1)
def get_settings() -> CalendarLinkSettings:
    """Return the process-wide settings instance."""
    return CalendarLinkSettings()
