"""Central environment-driven settings for the notification service.

The service process loads this once at startup. Behavior is controlled by
environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "notification"
    log_level: str = "INFO"
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumers_enabled: bool = True
    redis_url: str = "redis://redis:6379/0"
    postgres_dsn: str
    api_key: str
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    default_tenant_id: str = "default"
    public_base_url: str = "http://localhost:5173"
    studio_timezone: str = "America/Sao_Paulo"
    sweep_batch_size: int = 10
    sweep_interval_seconds: float = 60.0
    sweep_lock_backend: str = "redis"
    sweep_lock_ttl_seconds: int = 300
    send_interval_seconds: float = 2.0
    dedupe_window_seconds: int = 300
    gateway_timeout_seconds: float = 15.0
    phone_country_prefix: str = "55"
    phone_min_digits: int = 12
    phone_max_digits: int = 13
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
