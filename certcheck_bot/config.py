"""
Configuration management for SSL Certificate Checker.
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from certcheck_bot.errors import ConfigInvalid

DEFAULT_HOME = Path("~/.certchecker")
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config" / "config.yaml"


def _split_csv(value: Any) -> Any:
    """Accept comma separated strings wherever a list is expected."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Config(BaseModel):
    """Configuration model for SSL Certificate Checker."""

    # Monitoring targets
    domains: List[str]
    threshold_days: List[int]
    slack_webhook_url: str

    # Scheduling
    check_interval_hours: int = Field(default=6, ge=1)
    heartbeat_hours: int = Field(default=0, ge=0)
    workers: int = Field(default=4, ge=1, le=32)

    # Timeouts for outbound network calls
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    notifier_timeout_seconds: float = Field(default=10.0, gt=0)

    # Alert history
    data_dir: str = Field(default=str(DEFAULT_HOME / "data"))

    # Administrative HTTP server
    http_enabled: bool = Field(default=False)
    http_port: int = Field(default=8080, ge=1, le=65535)
    bind_address: str = Field(default="127.0.0.1")
    http_auth_token: Optional[str] = None

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=str(DEFAULT_HOME / "logs" / "cert-checker.log"))

    # Operation modes
    hot_reload: bool = Field(default=True)
    dry_run: bool = Field(default=False)

    @field_validator("domains", mode="before")
    @classmethod
    def split_domains(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("domains")
    @classmethod
    def validate_domains(cls, v: List[str]) -> List[str]:
        """Validate that at least one domain is configured."""
        domains = [d.strip() for d in v if d and d.strip()]
        if not domains:
            raise ValueError("At least one domain is required")
        return domains

    @field_validator("threshold_days", mode="before")
    @classmethod
    def split_thresholds(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("threshold_days")
    @classmethod
    def validate_thresholds(cls, v: List[int]) -> List[int]:
        """Validate thresholds are positive and drop duplicates."""
        if not v:
            raise ValueError("At least one threshold is required")
        unique: List[int] = []
        for days in v:
            if days <= 0:
                raise ValueError(f"Threshold days must be positive, got {days}")
            if days not in unique:
                unique.append(days)
        return unique

    @field_validator("slack_webhook_url")
    @classmethod
    def validate_webhook(cls, v: str) -> str:
        """Validate the webhook URL."""
        v = v.strip()
        if not v:
            raise ValueError("Slack webhook URL cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("Slack webhook URL must start with http:// or https://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_http_auth(self) -> "Config":
        """An auth token is mandatory once the HTTP server is enabled."""
        if self.http_enabled and not (self.http_auth_token and self.http_auth_token.strip()):
            raise ValueError("http_auth_token is required when the HTTP server is enabled")
        return self

    @property
    def check_interval_seconds(self) -> int:
        """Get check interval in seconds."""
        return self.check_interval_hours * 3600

    @property
    def heartbeat_interval_seconds(self) -> int:
        """Get heartbeat interval in seconds (0 when disabled)."""
        return self.heartbeat_hours * 3600

    @property
    def data_dir_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def log_file_path(self) -> Optional[Path]:
        return Path(self.log_file).expanduser() if self.log_file else None


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Config object

    Raises:
        FileNotFoundError: The configuration file does not exist
        ConfigInvalid: The merged configuration is not valid
    """
    config_data: Dict[str, Any] = {}

    if config_path:
        config_file = Path(config_path).expanduser()
        if config_file.exists():
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigInvalid(
                    f"Configuration file {config_path} is not valid YAML: {e}"
                ) from e
            if not isinstance(config_data, dict):
                raise ConfigInvalid(f"Configuration file {config_path} must contain a mapping")
        else:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    env_overrides = _get_env_overrides()
    config_data.update(env_overrides)

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid configuration: {e}") from e


def _truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _get_env_overrides() -> dict:
    """Get configuration overrides from environment variables."""
    env_mapping: Dict[str, tuple[str, Callable[[str], Any]]] = {
        "CERTCHECK_DOMAINS": ("domains", str),
        "CERTCHECK_THRESHOLD_DAYS": ("threshold_days", str),
        "CERTCHECK_SLACK_WEBHOOK_URL": ("slack_webhook_url", str),
        "CERTCHECK_CHECK_INTERVAL_HOURS": ("check_interval_hours", int),
        "CERTCHECK_HEARTBEAT_HOURS": ("heartbeat_hours", int),
        "CERTCHECK_WORKERS": ("workers", int),
        "CERTCHECK_PROBE_TIMEOUT": ("probe_timeout_seconds", float),
        "CERTCHECK_NOTIFIER_TIMEOUT": ("notifier_timeout_seconds", float),
        "CERTCHECK_DATA_DIR": ("data_dir", str),
        "CERTCHECK_HTTP_ENABLED": ("http_enabled", _truthy),
        "CERTCHECK_HTTP_PORT": ("http_port", int),
        "CERTCHECK_BIND_ADDRESS": ("bind_address", str),
        "CERTCHECK_HTTP_AUTH_TOKEN": ("http_auth_token", str),
        "CERTCHECK_LOG_LEVEL": ("log_level", str),
        "CERTCHECK_LOG_FILE": ("log_file", str),
        "CERTCHECK_HOT_RELOAD": ("hot_reload", _truthy),
    }

    overrides = {}
    for env_var, (config_key, converter) in env_mapping.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                overrides[config_key] = converter(value)
            except (ValueError, TypeError) as e:
                logging.warning(f"Invalid value for {env_var}: {value} - {e}")

    return overrides


def write_config(config: Config, output_path: str) -> Path:
    """
    Persist a validated configuration as YAML.

    Args:
        config: Configuration to write
        output_path: Destination file

    Returns:
        Path of the written file
    """
    path = Path(output_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(exclude_none=True, exclude={"dry_run"})
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    return path


def create_example_config(output_path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example_config = {
        "domains": ["example.com", "example.org"],
        "threshold_days": [30, 14, 7],
        "slack_webhook_url": "https://hooks.slack.com/services/T000/B000/XXXX",
        "check_interval_hours": 6,
        "heartbeat_hours": 24,
        "workers": 4,
        "probe_timeout_seconds": 10.0,
        "notifier_timeout_seconds": 10.0,
        "data_dir": "~/.certchecker/data",
        "http_enabled": False,
        "http_port": 8080,
        "bind_address": "127.0.0.1",
        "log_level": "INFO",
        "log_file": "~/.certchecker/logs/cert-checker.log",
        "hot_reload": True,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)
