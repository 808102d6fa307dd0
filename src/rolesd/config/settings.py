"""
Application settings using Pydantic.

Provides environment-based configuration loading with ROLESD_ prefix.
"""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


def split_csv(value: str) -> list[str]:
    """Split a comma separated flag value, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings."""

    # Process metrics endpoint
    listen_address: str = "localhost:9091"
    metrics_enabled: bool = True

    # Discovery
    roles: str = "jmx_exporter"
    target_addresses: str = "localhost:9090"
    refresh_interval: float = 30.0
    partial_batch_policy: Literal["emit_converted", "abort_cycle"] = "emit_converted"

    # File SD output
    output_path: str = "/opt/prometheus/conf/files_sd/"

    # HTTP client settings
    http_timeout: float = 10.0

    # Producer/consumer hand-off
    channel_buffer: int = 1

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "ROLESD_"

    @field_validator("refresh_interval", "http_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("channel_buffer")
    @classmethod
    def validate_buffer(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @property
    def role_list(self) -> list[str]:
        return split_csv(self.roles)

    @property
    def target_address_list(self) -> list[str]:
        return split_csv(self.target_addresses)
