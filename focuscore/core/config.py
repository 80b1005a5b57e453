"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration files",
    )

    # ==========================================================================
    # Backend
    # ==========================================================================

    backend: Literal["sqlite", "rest"] = Field(
        default="sqlite",
        description="Record store backend: local SQLite file or hosted REST store",
    )
    database_path: Path = Field(
        default=Path("data/focus.db"), description="Path to SQLite database file"
    )

    # Hosted store (PostgREST conventions)
    supabase_url: Optional[str] = Field(
        default=None, description="Base URL of the hosted store"
    )
    supabase_anon_key: Optional[str] = Field(
        default=None, description="Public API key sent as the apikey header"
    )
    supabase_access_token: Optional[str] = Field(
        default=None, description="User access token (falls back to the anon key)"
    )
    request_timeout_seconds: float = Field(
        default=10.0, gt=0, le=120, description="HTTP timeout for store calls"
    )
    feed_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Polling interval for the REST change feed",
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ==========================================================================
    # Logging
    # ==========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Minimum level for engine logs"
    )
    logs_dir: Path = Field(default=Path("logs"), description="Directory for per-run log files")
    log_runs_to_keep: int = Field(
        default=5, ge=1, le=100, description="Per-run log files retained on startup"
    )


# ============================================================================
# Engine Configuration (from YAML)
# ============================================================================


class SessionConfig(BaseModel):
    """Focus session state machine configuration."""

    rating_min: int = Field(default=1, ge=0, description="Lowest focus quality rating")
    rating_max: int = Field(default=5, ge=1, description="Highest focus quality rating")
    recent_limit: int = Field(
        default=10, ge=1, le=100, description="Sessions returned by list_recent"
    )

    @field_validator("rating_max")
    @classmethod
    def rating_bounds_ordered(cls, v: int, info: ValidationInfo) -> int:
        """Reject a rating range whose upper bound is below its lower bound."""
        low = info.data.get("rating_min")
        if low is not None and v < low:
            raise ValueError(f"rating_max ({v}) must be >= rating_min ({low})")
        return v


class ToolUsageConfig(BaseModel):
    """Tool usage tracker configuration."""

    min_duration_seconds: int = Field(
        default=5,
        ge=0,
        description="Activations shorter than this are treated as accidental opens",
    )


class NotificationConfig(BaseModel):
    """Achievement notification pipeline configuration."""

    reconnect_base_delay_seconds: float = Field(default=1.0, ge=0)
    reconnect_max_delay_seconds: float = Field(default=30.0, ge=0)
    reconnect_max_attempts: int = Field(default=5, ge=0, le=50)
    dedup_window: int = Field(
        default=500, ge=1, description="Processed event keys remembered per user"
    )
    queue_maxsize: int = Field(
        default=0, ge=0, description="Listener queue bound (0 = unbounded)"
    )


class MetricsConfig(BaseModel):
    """Metrics aggregation configuration."""

    cache_max_entries: int = Field(
        default=256, ge=1, description="Cached aggregates kept before eviction"
    )


class EngineConfig(BaseModel):
    """
    Complete engine configuration loaded from engine_config.yaml.

    Holds the tunables of the state machine, tracker, notifier and
    metrics engine.
    """

    session: SessionConfig = Field(default_factory=SessionConfig)
    tool_usage: ToolUsageConfig = Field(default_factory=ToolUsageConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def load_engine_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from YAML file.

    Args:
        config_path: Path to engine_config.yaml. If None, uses default path.

    Returns:
        EngineConfig with validated settings

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        # Default path: config/engine_config.yaml relative to project root
        current = Path(__file__).resolve().parent.parent.parent
        check_path = current / "config" / "engine_config.yaml"
        if check_path.exists():
            config_path = check_path
        else:
            cwd_config = Path.cwd() / "config" / "engine_config.yaml"
            if not cwd_config.exists():
                return EngineConfig()
            config_path = cwd_config

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return EngineConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return EngineConfig()

    return EngineConfig(**config_data)


# Global settings instance
settings = Settings()

# Global engine config instance
engine_config = load_engine_config()
