"""Centralized configuration for workflow-index using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Locations
    workflows_dir: Path = Field(default=Path("workflows"), description="Directory holding the workflow JSON corpus")
    database_path: Path = Field(default=Path("database/workflows.db"), description="SQLite index store location")
    categories_path: Path = Field(
        default=Path("search_categories.json"),
        description="JSON object mapping category names to member filenames",
    )

    # Analytics
    stats_cache_ttl_seconds: float = Field(default=5.0, gt=0, description="Lifetime of a cached statistics snapshot")
    top_integrations_limit: int = Field(default=20, ge=1, description="Integrations listed in a statistics snapshot")

    # Query
    default_page_size: int = Field(default=20, ge=1, le=100, description="Page size when a query sets no limit")
    max_page_size: int = Field(default=100, ge=1, le=100, description="Largest page size a query may request")

    # Similarity
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Default minimum combined score")
    similarity_result_limit: int = Field(default=20, ge=1, description="Similar workflows returned per request")

    # Storage
    sqlite_busy_timeout_ms: int = Field(default=30000, ge=0, description="SQLite busy timeout in milliseconds")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    log_logger_levels: str = Field(
        default="", description="Comma-separated per-logger overrides, e.g. 'workflow_index.search=debug'"
    )
    service_name: str = Field(default="workflow-index", description="Service name reported to OpenTelemetry")

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("DEFAULT_PAGE_SIZE must not exceed MAX_PAGE_SIZE")
        return self

    def get_logger_levels(self) -> dict[str, str]:
        """Parse ``log_logger_levels`` into a logger name -> level mapping."""
        levels: dict[str, str] = {}
        for entry in self.log_logger_levels.split(","):
            name, _, level = entry.partition("=")
            if name.strip() and level.strip():
                levels[name.strip()] = level.strip()
        return levels
