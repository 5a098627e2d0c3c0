"""Configuration system for pixel audits.

This module provides configuration management for fetch limits, detector
switches and event validation tables, including YAML loading, validation
and environment variable overrides.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class FetchConfig(BaseModel):
    """Configuration for page and script retrieval."""

    page_timeout: float = Field(default=20.0, gt=0, description="Page fetch timeout in seconds")
    script_timeout: float = Field(default=8.0, gt=0, description="Per-script fetch timeout in seconds")
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum external scripts fetched at the same time"
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    accept_language: str = Field(default="en-US,en;q=0.9,es;q=0.8")
    retry_when_blocked: bool = Field(
        default=True,
        description="Retry the page once with session cookies when it looks like a bot wall"
    )
    inject_gtm_containers: bool = Field(
        default=True,
        description="Fetch gtm.js for GTM ids found in the page even without a loader tag"
    )


class DetectorToggle(BaseModel):
    """On/off switch shared by every detector."""

    enabled: bool = Field(default=True)


class GA4DetectorConfig(DetectorToggle):
    """Configuration for the GA4 detector."""

    reject_suspicious_casing: bool = Field(
        default=True,
        description="Drop G- ids that mix lower and upper case (usually minifier artifacts)"
    )


class DetectorsConfig(BaseModel):
    """Per-detector configuration."""

    ga4: GA4DetectorConfig = Field(default_factory=GA4DetectorConfig)
    gtm: DetectorToggle = Field(default_factory=DetectorToggle)
    google_ads: DetectorToggle = Field(default_factory=DetectorToggle)
    meta_pixel: DetectorToggle = Field(default_factory=DetectorToggle)
    shopify: DetectorToggle = Field(default_factory=DetectorToggle)


class EventsConfig(BaseModel):
    """Configuration for event validation."""

    required_params: Dict[str, List[str]] = Field(
        default_factory=lambda: {
            # GA4
            "purchase": ["transaction_id", "value", "currency"],
            "add_to_cart": ["currency", "value"],
            "begin_checkout": ["currency", "value"],
            # Meta Pixel
            "Purchase": ["value", "currency"],
            "AddToCart": ["value", "currency"],
            "InitiateCheckout": ["value", "currency"],
        },
        description="Event name -> parameters that event must carry"
    )
    high_severity_events: List[str] = Field(
        default_factory=lambda: ["purchase", "Purchase"],
        description="Events whose missing parameters are reported as high severity"
    )


class AuditConfig(BaseModel):
    """Root configuration for an audit run."""

    environment: str = Field(
        default="production",
        description="Environment name"
    )
    debug: bool = Field(default=False, description="Add per-script fetch outcomes to the report debug block")
    deadline_seconds: float = Field(
        default=45.0,
        gt=0,
        description="Overall budget for page fetch, script fetches and detection"
    )
    detection_reserve_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Part of the deadline kept for detection, capped at a quarter of it"
    )

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    detectors: DetectorsConfig = Field(default_factory=DetectorsConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        """Validate environment name."""
        allowed_envs = ['development', 'staging', 'production', 'test']
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of: {allowed_envs}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class ConfigurationError(Exception):
    """Configuration-related errors."""
    pass


class ConfigManager:
    """Loads, merges and validates audit configuration."""

    ENV_PREFIX = "PIXEL_AUDITOR_"

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[AuditConfig] = None
        self._overrides: Dict[str, Any] = {}

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> AuditConfig:
        """Load configuration from file, overrides and environment.

        Args:
            config_path: Optional override for config file path

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationError: If the file cannot be read or fails validation
        """
        if config_path:
            self.config_path = Path(config_path)

        config_data: Dict[str, Any] = {}

        if self.config_path:
            if not self.config_path.exists():
                raise ConfigurationError(f"Config file not found: {self.config_path}")
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {self.config_path}: {e}")
            if not isinstance(config_data, dict):
                raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")

        self._merge_config(config_data, self._overrides)
        self._merge_config(config_data, self._load_environment_variables())

        try:
            self._config = AuditConfig(**config_data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

        return self._config

    def get_config(self) -> AuditConfig:
        """Get current configuration, loading defaults if needed."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def set_override(self, key: str, value: Any) -> None:
        """Set a top-level override applied on the next load."""
        self._overrides[key] = value
        self._config = None

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}
        prefix = self.ENV_PREFIX

        if env_env := os.getenv(f'{prefix}ENVIRONMENT'):
            env_config['environment'] = env_env

        numeric = {
            'PAGE_TIMEOUT': ('fetch', 'page_timeout', float),
            'SCRIPT_TIMEOUT': ('fetch', 'script_timeout', float),
            'MAX_CONCURRENCY': ('fetch', 'max_concurrency', int),
        }
        for suffix, (section, key, cast) in numeric.items():
            raw = os.getenv(f'{prefix}{suffix}')
            if raw is None:
                continue
            try:
                env_config.setdefault(section, {})[key] = cast(raw)
            except ValueError:
                raise ConfigurationError(f"{prefix}{suffix} must be numeric, got {raw!r}")

        if deadline := os.getenv(f'{prefix}DEADLINE'):
            try:
                env_config['deadline_seconds'] = float(deadline)
            except ValueError:
                raise ConfigurationError(f"{prefix}DEADLINE must be numeric, got {deadline!r}")

        if os.getenv(f'{prefix}DEBUG') == 'true':
            env_config['debug'] = True

        return env_config

    def _merge_config(self, base_config: Dict[str, Any], override_config: Dict[str, Any]) -> None:
        """Deep merge configuration dictionaries."""
        for key, value in override_config.items():
            if key in base_config and isinstance(base_config[key], dict) and isinstance(value, dict):
                self._merge_config(base_config[key], value)
            else:
                base_config[key] = value


# Global configuration manager instance
config_manager = ConfigManager()


def get_config() -> AuditConfig:
    """Get current audit configuration."""
    return config_manager.get_config()


def load_config(config_path: Union[str, Path]) -> AuditConfig:
    """Load configuration from specified path."""
    return config_manager.load_config(config_path)
