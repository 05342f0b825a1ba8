# ------------------------------------------------------------------------------
# FILE: helloserver/config.py
# ------------------------------------------------------------------------------
"""Process configuration loaded once at startup.

Values come from the environment (and an optional `.env` file) through
pydantic-settings. The resulting `Config` is frozen: nothing changes it for
the lifetime of the process.
"""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from helloserver.errors.fatal import ConfigError

BYTES_PER_MB = 1024 * 1024


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # HTTP
    host: str = Field("0.0.0.0")
    port: int = Field(8080, ge=0, le=65535)

    # Allocator
    target_count: int = Field(7, ge=0)
    chunk_size_mb: int = Field(1, ge=1)
    interval_secs: int = Field(5, ge=1)
    custom_message: str = Field("Hello 7 objects")

    # Telemetry
    service_name: str = Field("example-service", validation_alias="OTEL_SERVICE_NAME")
    service_version: str = Field("1.0.0")
    tracing_enabled: bool = Field(True)
    otlp_endpoint: Optional[str] = Field(None, validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT")
    otlp_headers: Optional[str] = Field(None, validation_alias="OTEL_EXPORTER_OTLP_HEADERS")
    otel_sampler: Literal["always_on", "always_off", "traceidratio"] = Field("always_on")
    otel_sample_rate: float = Field(1.0, ge=0.0, le=1.0)

    # Logging
    debug: bool = Field(False)
    log_level: str = Field("INFO")
    log_format: Literal["text", "json"] = Field("text")
    log_dir: Optional[str] = Field(None)

    # Metrics
    metrics_enabled: bool = Field(True)
    metrics_port: int = Field(9464, ge=0, le=65535)

    @property
    def chunk_size_bytes(self) -> int:
        return self.chunk_size_mb * BYTES_PER_MB

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()

    def otlp_header_map(self) -> Dict[str, str]:
        """Parse `key=value,key2=value2` as used by OTEL_EXPORTER_OTLP_HEADERS."""
        headers: Dict[str, str] = {}
        if not self.otlp_headers:
            return headers
        for item in self.otlp_headers.split(","):
            if not item.strip():
                continue
            key, sep, value = item.partition("=")
            if not sep:
                raise ConfigError("Malformed OTLP header", context={"header": item.strip()})
            headers[key.strip()] = value.strip()
        return headers


def load_config(**overrides: Any) -> Config:
    """Build the process configuration; explicit overrides win over the environment."""
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Config(**values)
    except ValidationError as exc:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
            for err in exc.errors()
        ]
        raise ConfigError("Invalid configuration", context={"errors": errors}) from exc


_REDACT_HINTS = ("PASSWORD", "SECRET", "TOKEN", "HEADERS", "KEY")


def _should_redact(key: str) -> bool:
    upper = key.upper()
    return any(hint in upper for hint in _REDACT_HINTS)


def redact_config(values: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in values.items():
        if _should_redact(key) and value is not None:
            sanitized[key] = "****"
        else:
            sanitized[key] = value
    return sanitized
