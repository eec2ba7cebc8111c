from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "saved-items-api"
    environment: str = "dev"
    log_level: str = "INFO"
    database_url: str | None = None
    database_replica_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    parser_base_url: str | None = None
    parser_timeout_seconds: float = 5.0
    event_sink_url: str | None = None
    event_sink_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "saved-items-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SI_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
