"""Application configuration for the object proxy."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def env_field(default, env_name: str):
    return Field(default, validation_alias=env_name)


def split_bind(value: str) -> tuple[str, int]:
    """Split a ``host:port`` bind address, accepting bracketed IPv6 hosts."""

    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"bind address must be host:port, got {value!r}")
    host = host.strip("[]") or "0.0.0.0"
    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ValueError(f"bind port out of range: {port_number}")
    return host, port_number


class ProxySettings(BaseSettings):
    """Runtime settings for the object proxy service.

    Every field can be set through the environment (or a ``.env`` file); the
    command line overrides the subset exposed as flags.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    bind: str = env_field("127.0.0.1:8080", "BUCKETPROXY_BIND")
    verbose: bool = env_field(False, "BUCKETPROXY_VERBOSE")
    credentials_file: Optional[Path] = env_field(None, "BUCKETPROXY_CREDENTIALS_FILE")
    block_if: str = env_field("", "BUCKETPROXY_BLOCK_IF")
    pass_through: str = env_field("", "BUCKETPROXY_PASS_THROUGH")
    metadata_header_prefix: str = env_field("X-Goog-Meta-", "BUCKETPROXY_METADATA_HEADER_PREFIX")
    s3_endpoint_url: Optional[str] = env_field(None, "BUCKETPROXY_S3_ENDPOINT")
    s3_region: Optional[str] = env_field(None, "BUCKETPROXY_S3_REGION")
    s3_addressing_style: Literal["auto", "virtual", "path"] = env_field("auto", "BUCKETPROXY_S3_ADDRESSING_STYLE")
    backend_connect_timeout_seconds: float = env_field(10.0, "BUCKETPROXY_BACKEND_CONNECT_TIMEOUT")
    backend_read_timeout_seconds: float = env_field(60.0, "BUCKETPROXY_BACKEND_READ_TIMEOUT")
    max_pool_connections: int = env_field(50, "BUCKETPROXY_MAX_POOL_CONNECTIONS")
    stream_chunk_size: int = env_field(64 * 1024, "BUCKETPROXY_STREAM_CHUNK_SIZE")
    log_level: str = env_field("INFO", "BUCKETPROXY_LOG_LEVEL")
    otel_exporter_endpoint: Optional[str] = env_field(None, "BUCKETPROXY_OTEL_EXPORTER_ENDPOINT")
    otel_exporter_headers: Optional[str] = env_field(None, "BUCKETPROXY_OTEL_EXPORTER_HEADERS")
    otel_sampler_ratio: float = env_field(0.1, "BUCKETPROXY_OTEL_SAMPLER_RATIO")

    @field_validator("bind")
    @classmethod
    def _validate_bind(cls, value: str) -> str:
        split_bind(value)
        return value

    @field_validator("stream_chunk_size", "max_pool_connections")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("credentials_file", mode="before")
    @classmethod
    def _empty_path_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def bind_address(self) -> tuple[str, int]:
        return split_bind(self.bind)

    @property
    def otlp_headers(self) -> dict[str, str]:
        """``key=value`` pairs from ``otel_exporter_headers``; malformed entries are skipped."""

        headers: dict[str, str] = {}
        for item in (self.otel_exporter_headers or "").split(","):
            key, _, value = item.partition("=")
            if key.strip() and value.strip():
                headers[key.strip()] = value.strip()
        return headers
