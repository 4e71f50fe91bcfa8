"""Configuration Management for claimtrail

Loads configuration from multiple sources with priority:
1. Programmatic overrides (highest priority)
2. Environment variables
3. YAML config file
4. Default values (lowest priority)
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from claimtrail.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ApiConfig:
    """FastAPI application configuration"""

    database_url: str = "sqlite:///./claimtrail.db"
    database_echo: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    api_version: str = "1.0.0"
    api_title: str = "claimtrail API"
    dev_mode: bool = True


@dataclass
class WebhookConfig:
    """Inbound webhook configuration"""

    # Shared HMAC secret. None means every signed request is rejected.
    secret: str | None = None

    # Fraud score strictly above this flips the effective status to FLAGGED_FRAUD.
    fraud_flag_threshold: float = 0.8

    # Source tags sent in X-Webhook-Source by each collaborator
    payment_source: str = "payment-gateway"
    fraud_source: str = "fraud-service"
    document_source: str = "document-service"

    # Retries of a unit of work that lost an optimistic-concurrency race
    max_attempts: int = 3


@dataclass
class TimelineConfig:
    """Timeline projection configuration"""

    relative_window_days: int = 7


@dataclass
class AppConfig:
    """Top-level service configuration"""

    # Logging
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_file: str | None = None  # If None, log to console only
    log_json: bool = False

    api: ApiConfig = field(default_factory=ApiConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    timeline: TimelineConfig = field(default_factory=TimelineConfig)

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_levels:
            raise ConfigurationError(f"log_level must be one of {sorted(valid_levels)}, got {self.log_level!r}")
        if not 0.0 <= self.webhook.fraud_flag_threshold <= 1.0:
            raise ConfigurationError(
                f"fraud_flag_threshold must be within [0, 1], got {self.webhook.fraud_flag_threshold}"
            )
        if self.webhook.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.webhook.max_attempts}")
        if self.timeline.relative_window_days < 1:
            raise ConfigurationError(
                f"relative_window_days must be >= 1, got {self.timeline.relative_window_days}"
            )


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


class ConfigLoader:
    """Loads configuration from YAML and environment variables"""

    @staticmethod
    def load_from_yaml(yaml_path: str) -> dict[str, Any]:
        """Load configuration from YAML file"""
        yaml_path_obj = Path(yaml_path)
        if not yaml_path_obj.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path_obj, encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)

        return config_dict or {}

    @staticmethod
    def load_from_env() -> dict[str, Any]:
        """Load configuration from environment variables"""
        env_config: dict[str, Any] = {}

        env_mappings = {
            "CLAIMTRAIL_LOG_LEVEL": ("log_level", str),
            "CLAIMTRAIL_LOG_FILE": ("log_file", str),
            "CLAIMTRAIL_LOG_JSON": ("log_json", _as_bool),
            # API
            "CLAIMTRAIL_DATABASE_URL": ("api.database_url", str),
            "CLAIMTRAIL_DATABASE_ECHO": ("api.database_echo", _as_bool),
            "CLAIMTRAIL_CORS_ORIGINS": ("api.cors_origins", lambda x: [o.strip() for o in x.split(",") if o.strip()]),
            "CLAIMTRAIL_DEV_MODE": ("api.dev_mode", _as_bool),
            # Webhooks
            "CLAIMTRAIL_WEBHOOK_SECRET": ("webhook.secret", str),
            "CLAIMTRAIL_FRAUD_FLAG_THRESHOLD": ("webhook.fraud_flag_threshold", float),
            "CLAIMTRAIL_WEBHOOK_MAX_ATTEMPTS": ("webhook.max_attempts", int),
            # Timeline
            "CLAIMTRAIL_TIMELINE_WINDOW_DAYS": ("timeline.relative_window_days", int),
        }

        for env_var, (config_key, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    converted_value = converter(value)
                    # Support nested keys like "webhook.secret"
                    keys = config_key.split(".")
                    current = env_config
                    for key in keys[:-1]:
                        if key not in current:
                            current[key] = {}
                        current = current[key]
                    current[keys[-1]] = converted_value
                except (ValueError, TypeError) as e:
                    logger.warning("Failed to convert env var %s=%r: %s", env_var, value, e)

        return env_config

    @staticmethod
    def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
        """Merge multiple config dictionaries (later configs override earlier ones)"""
        merged: dict[str, Any] = {}

        for config in configs:
            merged = ConfigLoader._deep_merge(merged, config)

        return merged

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigLoader._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def dict_to_config(config_dict: dict[str, Any]) -> AppConfig:
        """Convert dictionary to AppConfig dataclass"""
        config_dict = dict(config_dict)
        api_dict = config_dict.pop("api", {}) or {}
        webhook_dict = config_dict.pop("webhook", {}) or {}
        timeline_dict = config_dict.pop("timeline", {}) or {}

        try:
            return AppConfig(
                **config_dict,
                api=ApiConfig(**api_dict),
                webhook=WebhookConfig(**webhook_dict),
                timeline=TimelineConfig(**timeline_dict),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}") from e


def load_config(yaml_path: str | None = None, override_dict: dict[str, Any] | None = None) -> AppConfig:
    """
    Load configuration from multiple sources.

    Priority (highest to lowest):
    1. override_dict (programmatic overrides)
    2. Environment variables
    3. YAML file
    4. Default values

    Args:
        yaml_path: Path to YAML config file (optional)
        override_dict: Programmatic overrides (optional)

    Returns:
        AppConfig instance
    """
    loader = ConfigLoader()

    default_config = asdict(AppConfig())

    yaml_config: dict[str, Any] = {}
    if yaml_path:
        try:
            yaml_config = loader.load_from_yaml(yaml_path)
        except FileNotFoundError as e:
            logger.warning("%s", e)

    env_config = loader.load_from_env()

    merged_config = loader.merge_configs(default_config, yaml_config, env_config, override_dict or {})

    return loader.dict_to_config(merged_config)


def save_config(config: AppConfig, yaml_path: str) -> None:
    """Save configuration to YAML file (the webhook secret is never written)"""
    config_dict = asdict(config)
    config_dict["webhook"]["secret"] = None

    yaml_path_obj = Path(yaml_path)
    yaml_path_obj.parent.mkdir(parents=True, exist_ok=True)

    with open(yaml_path_obj, "w", encoding="utf-8") as f:
        yaml.dump(config_dict, f, default_flow_style=False, allow_unicode=True, indent=2)
