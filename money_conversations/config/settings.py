"""
Configuration Management for Money Conversations

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunable configuration is centralized here.
Field-length limits are NOT configuration: they are part of the data model
and live next to the entity definitions.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Local entity graph storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONEYCONV_STORE_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / ".money_conversations",
        description="Directory holding the persisted entity graph"
    )
    graph_file_name: str = Field(
        default="graph.json",
        description="File name of the persisted entity graph"
    )

    @field_validator('graph_file_name')
    @classmethod
    def validate_graph_file_name(cls, v: str) -> str:
        """The graph file must be a bare file name, not a path."""
        if not v or Path(v).name != v:
            raise ValueError(f"graph_file_name must be a plain file name, got {v!r}")
        return v

    @property
    def graph_path(self) -> Path:
        """Full path of the persisted entity graph."""
        return self.data_dir.expanduser() / self.graph_file_name


class RemoteConfigSettings(BaseSettings):
    """Remote configuration (startup redirect) collaborator."""

    model_config = SettingsConfigDict(
        env_prefix="REMOTE_CONFIG_",
        extra="ignore"
    )

    endpoint: Optional[str] = Field(
        default=None,
        description="URL returning the remote configuration as a JSON object"
    )
    target_url_key: str = Field(
        default="url_3",
        description="Key holding the redirect URL in a fresh fetch"
    )
    cached_url_key: str = Field(
        default="url_2",
        description="Key holding the fallback URL used when rate limited"
    )
    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for the configuration fetch"
    )
    reachability_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Hard timeout for the follow-up reachability check"
    )
    fetch_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for the configuration fetch on transport errors"
    )
    retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base of the exponential backoff between fetch attempts"
    )


class ReportSettings(BaseSettings):
    """Yearly PDF report layout."""

    model_config = SettingsConfigDict(
        env_prefix="REPORT_",
        extra="ignore"
    )

    page_width_in: float = Field(default=8.5, gt=0)
    page_height_in: float = Field(default=11.0, gt=0)
    font_path: Optional[Path] = Field(
        default=None,
        description="TrueType font for report text; a system Unicode font when unset"
    )
    compress_pages: bool = Field(
        default=True,
        description="Deflate page content streams"
    )
    margin_pt: int = Field(
        default=72,
        ge=18,
        description="Page margin in points (1/72 inch)"
    )
    author: str = Field(default="User")
    creator: str = Field(default="Money Conversation Manager")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Contact photos
    max_image_size_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum photo payload size in MB (before compression)"
    )
    max_image_dimension: int = Field(
        default=1024,
        ge=64,
        description="Longest edge of a stored contact photo, in pixels"
    )
    image_jpeg_quality: int = Field(
        default=70,
        ge=1,
        le=95,
        description="JPEG quality used when re-encoding contact photos"
    )

    # Validation thresholds
    future_date_tolerance_days: int = Field(
        default=365,
        ge=0,
        description="How many days in the future a conversation date can be"
    )

    # Paging
    items_per_page: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Default page size for paginated conversation lists"
    )

    # Backup
    backup_format_version: str = Field(
        default="1.0",
        description="Version string written into JSON backups"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def max_image_size_bytes(self) -> int:
        """Get max photo size in bytes."""
        return self.max_image_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def store(self) -> StoreSettings:
        return StoreSettings()

    @property
    def remote_config(self) -> RemoteConfigSettings:
        return RemoteConfigSettings()

    @property
    def report(self) -> ReportSettings:
        return ReportSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus {setting_name_error: message}
    for every section that failed. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("store", "remote_config", "report", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
