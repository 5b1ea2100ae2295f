"""
Venue Capacity Configuration
============================

This module handles configuration loading for the occupancy engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    VENUE_CAPACITY_LIVE_URL        -> connection.live_url
    VENUE_CAPACITY_MAX_RETRIES     -> connection.max_retries
    VENUE_CAPACITY_BASE_DELAY      -> connection.base_delay_seconds
    VENUE_CAPACITY_PULL_URL        -> poller.pull_url
    VENUE_CAPACITY_POLL_INTERVAL   -> poller.fallback_interval_seconds
    VENUE_CAPACITY_CAPACITY_URL    -> capacity.capacity_url
    VENUE_CAPACITY_DEFAULT_MAX     -> capacity.default_expected_max
    VENUE_CAPACITY_ALERT_COOLDOWN  -> alerts.cooldown_seconds
    VENUE_CAPACITY_LOG_LEVEL       -> logging.level
    PORT                           -> server.port

Example:
    from venue_capacity.config import settings

    print(settings.connection.max_retries)
    print(settings.alerts.warning_ratio)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from venue_capacity.signals.rset import DEFAULT_PRESETS


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ConnectionConfig(BaseModel):
    """Live-update subscription and reconnect backoff."""

    live_url: Optional[str] = Field(
        default=None,
        description="WebSocket URL template of the live source, {entity_id} is substituted",
    )
    base_delay_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Backoff base delay",
    )
    max_delay_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Backoff delay cap (before jitter)",
    )
    max_jitter_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Upper bound of the random jitter added to each delay",
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        description="Reconnect attempts before giving up",
    )
    stale_after_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Treat the push channel as failed after this long without data (None = off)",
    )


class PollerConfig(BaseModel):
    """Fallback poller intervals."""

    pull_url: Optional[str] = Field(
        default=None,
        description="HTTP URL template returning the latest sample, {entity_id} is substituted",
    )
    fallback_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Poll interval while the push channel is not live",
    )
    safety_interval_seconds: Optional[float] = Field(
        default=120.0,
        gt=0,
        description="Poll interval while live (None = stop polling when live)",
    )
    request_timeout_seconds: float = Field(default=5.0, gt=0)


class CapacityConfig(BaseModel):
    """Expected-capacity source."""

    capacity_url: Optional[str] = Field(
        default=None,
        description="HTTP URL template returning expected_max, {entity_id} is substituted",
    )
    default_expected_max: int = Field(
        default=25000,
        gt=0,
        description="Capacity used when the source has no value",
    )


class StoreConfig(BaseModel):
    """Sample store bounds."""

    max_samples: int = Field(
        default=1000,
        ge=10,
        description="Samples retained per entity (oldest dropped first)",
    )


class FlowConfig(BaseModel):
    """Flow analyzer configuration."""

    window: int = Field(default=10, ge=2, description="Samples used for flow rate")
    high_flow_threshold: float = Field(
        default=20.0,
        ge=0,
        description="Net inflow (people/minute) flagged as high flow",
    )


class PredictionConfig(BaseModel):
    """Prediction engine configuration."""

    window: int = Field(default=5, ge=2, description="Samples used for regression")
    step_minutes: int = Field(default=15, gt=0, description="Minutes between projected points")
    steps: int = Field(default=8, gt=0, description="Number of projected points (8 x 15 = 2h)")
    min_confidence: float = Field(default=50.0, ge=0, le=100)
    max_confidence: float = Field(default=95.0, ge=0, le=100)


class AlertConfig(BaseModel):
    """Alert coordinator thresholds."""

    warning_ratio: float = Field(default=0.90, gt=0, description="Ratio that raises a warning")
    critical_ratio: float = Field(default=1.0, gt=0, description="Ratio that raises a critical alert")
    cooldown_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Evaluations this soon after a fired alert are ignored",
    )


class EvacuationConfig(BaseModel):
    """RSET estimator inputs."""

    preset: str = Field(default="standard", description="RSET preset name")
    exit_count: Optional[int] = Field(
        default=None,
        gt=0,
        description="Known exit count (None = occupancy-only proxy)",
    )

    @field_validator("preset")
    @classmethod
    def _known_preset(cls, value: str) -> str:
        if value not in DEFAULT_PRESETS:
            raise ValueError(
                f"Unknown RSET preset {value!r}, expected one of {sorted(DEFAULT_PRESETS)}"
            )
        return value


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the occupancy engine.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    capacity: CapacityConfig = Field(default_factory=CapacityConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    flow: FlowConfig = Field(default_factory=FlowConfig)
    prediction: PredictionConfig = Field(default_factory=PredictionConfig)
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    evacuation: EvacuationConfig = Field(default_factory=EvacuationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Connection settings
    if env_url := os.environ.get("VENUE_CAPACITY_LIVE_URL"):
        config_data.setdefault("connection", {})["live_url"] = env_url
    if env_retries := os.environ.get("VENUE_CAPACITY_MAX_RETRIES"):
        config_data.setdefault("connection", {})["max_retries"] = int(env_retries)
    if env_delay := os.environ.get("VENUE_CAPACITY_BASE_DELAY"):
        config_data.setdefault("connection", {})["base_delay_seconds"] = float(env_delay)

    # Poller settings
    if env_pull := os.environ.get("VENUE_CAPACITY_PULL_URL"):
        config_data.setdefault("poller", {})["pull_url"] = env_pull
    if env_interval := os.environ.get("VENUE_CAPACITY_POLL_INTERVAL"):
        config_data.setdefault("poller", {})["fallback_interval_seconds"] = float(env_interval)

    # Capacity settings
    if env_cap := os.environ.get("VENUE_CAPACITY_CAPACITY_URL"):
        config_data.setdefault("capacity", {})["capacity_url"] = env_cap
    if env_default := os.environ.get("VENUE_CAPACITY_DEFAULT_MAX"):
        config_data.setdefault("capacity", {})["default_expected_max"] = int(env_default)

    # Alert settings
    if env_cooldown := os.environ.get("VENUE_CAPACITY_ALERT_COOLDOWN"):
        config_data.setdefault("alerts", {})["cooldown_seconds"] = float(env_cooldown)

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("VENUE_CAPACITY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

settings = load_config()
setup_logging(settings)
