from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ENTERPRISE_PERF_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "enterprise-perf"
    env: str = "dev"

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Cache
    cache_enabled: bool = Field(default=True, validation_alias="CACHE_ENABLED")
    cache_key_prefix: str = Field(default="enterprise", validation_alias="CACHE_KEY_PREFIX")
    cache_command_timeout: float = Field(
        default=5.0, validation_alias="CACHE_COMMAND_TIMEOUT"
    )
    cache_health_timeout: float = Field(default=5.0, validation_alias="CACHE_HEALTH_TIMEOUT")
    cache_default_ttl: int = Field(default=300, validation_alias="CACHE_DEFAULT_TTL")

    # TTL by resource category (seconds)
    cache_ttl_organization: int = Field(default=300, validation_alias="CACHE_TTL_ORGANIZATION")
    cache_ttl_clinic: int = Field(default=300, validation_alias="CACHE_TTL_CLINIC")
    cache_ttl_assignment: int = Field(default=60, validation_alias="CACHE_TTL_ASSIGNMENT")
    cache_ttl_list: int = Field(default=30, validation_alias="CACHE_TTL_LIST")
    cache_ttl_stats: int = Field(default=120, validation_alias="CACHE_TTL_STATS")
    cache_ttl_session: int = Field(default=1800, validation_alias="CACHE_TTL_SESSION")
    cache_ttl_config: int = Field(default=600, validation_alias="CACHE_TTL_CONFIG")

    # Pagination
    pagination_default_limit: int = Field(
        default=20, validation_alias="PAGINATION_DEFAULT_LIMIT"
    )
    pagination_max_limit: int = Field(default=100, validation_alias="PAGINATION_MAX_LIMIT")
    pagination_estimate_count: bool = Field(
        default=True, validation_alias="PAGINATION_ESTIMATE_COUNT"
    )
    # Unfiltered collections larger than this may report an estimated total
    pagination_estimate_threshold: int = Field(
        default=100_000, validation_alias="PAGINATION_ESTIMATE_THRESHOLD"
    )

    # Batch loading
    batch_loading_enabled: bool = Field(default=True, validation_alias="QUERY_BATCH_LOADING")
    batch_delay_ms: float = Field(default=10.0, validation_alias="QUERY_BATCH_DELAY")
    batch_max_size: int = Field(default=100, validation_alias="QUERY_MAX_BATCH_SIZE")

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    def ttl_table(self) -> dict[str, int]:
        """TTL per resource category, in seconds."""
        return {
            "organization": self.cache_ttl_organization,
            "clinic": self.cache_ttl_clinic,
            "assignment": self.cache_ttl_assignment,
            "list": self.cache_ttl_list,
            "stats": self.cache_ttl_stats,
            "session": self.cache_ttl_session,
            "config": self.cache_ttl_config,
        }

    @property
    def batch_delay_seconds(self) -> float:
        return self.batch_delay_ms / 1000.0
