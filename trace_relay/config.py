from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from trace_relay.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    license_key: str = Field(alias="TELEMETRY_LICENSE_KEY", min_length=1)
    app_name: str = Field(default="trace-relay-demo", alias="TELEMETRY_APP_NAME")
    span_exporter: Literal["console", "none"] = Field(default="console", alias="SPAN_EXPORTER")
    distributed_tracing: bool = Field(default=True, alias="DISTRIBUTED_TRACING")

    fetch_url: str = Field(default="https://aereal.org/", alias="FETCH_URL")
    log_ingest_url: str = Field(default="https://log-api.newrelic.com/log/v1", alias="LOG_INGEST_URL")
    outbound_timeout_seconds: float = Field(default=10.0, alias="OUTBOUND_TIMEOUT_SECONDS")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        if any(err.get("loc") == ("TELEMETRY_LICENSE_KEY",) for err in exc.errors()):
            raise ConfigurationError("TELEMETRY_LICENSE_KEY required") from exc
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
