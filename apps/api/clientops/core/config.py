from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Client Lifecycle Ops API"
    app_env: str = "local"
    app_debug: bool = True
    app_version: str = "0.1.0"
    api_port: int = 8000
    redis_url: str = "redis://redis:6379/0"
    billing_api_url: str | None = None
    billing_api_token: str | None = None
    billing_api_timeout_seconds: float = 10.0
    billing_page_size: int = 100
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_service_name: str = "clientops-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_console_exporter: bool = False
    dashboard_refresh_seconds: int = 300

    onboarding_stall_warning_days: int = 7
    onboarding_stall_critical_days: int = 14
    dunning_warning_days: int = 3
    dunning_urgent_days: int = 7
    dunning_critical_days: int = 10
    # JSON mapping of component name to weight, e.g. {"usage": 2, "payment": 1, "subscription": 1}.
    health_weights: dict[str, float] = Field(default_factory=dict)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
