"""
Command line entry point.

Commands:
    rolesd --target.address prom1:9090,prom2:9090 --role jmx_exporter
    rolesd --output.path /etc/prometheus/files_sd/ --refresh-interval 15
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from rolesd.config.settings import Settings
from rolesd.core.errors import ConfigurationError, ExitCode, main_with_error_handling
from rolesd.logging import configure_logging
from rolesd.service import run_service

logger = structlog.get_logger()

# Flag destination -> Settings field
_OVERRIDES = {
    "listen_address": "listen_address",
    "roles": "roles",
    "target_addresses": "target_addresses",
    "output_path": "output_path",
    "refresh_interval": "refresh_interval",
    "http_timeout": "http_timeout",
    "partial_batch_policy": "partial_batch_policy",
    "log_level": "log_level",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rolesd",
        description="Generate file_sd target files from a Prometheus query.",
    )
    parser.add_argument(
        "--listen.address",
        "--listen-address",
        dest="listen_address",
        help="Address for the process metrics endpoint (default: localhost:9091)",
    )
    parser.add_argument(
        "--role",
        "--output.file",
        dest="roles",
        help="Comma separated role patterns to discover (default: jmx_exporter)",
    )
    parser.add_argument(
        "--target.address",
        "--target-address",
        dest="target_addresses",
        help="Comma separated Prometheus HTTP API addresses (default: localhost:9090)",
    )
    parser.add_argument(
        "--output.path",
        "--output-path",
        dest="output_path",
        help="Directory receiving <role>.metrics.json files",
    )
    parser.add_argument(
        "--refresh-interval",
        dest="refresh_interval",
        type=float,
        help="Seconds between refresh cycles (default: 30)",
    )
    parser.add_argument(
        "--http-timeout",
        dest="http_timeout",
        type=float,
        help="Timeout of one backend query in seconds",
    )
    parser.add_argument(
        "--partial-batch-policy",
        dest="partial_batch_policy",
        choices=["emit_converted", "abort_cycle"],
        help="What to do when some records fail to convert",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--no-metrics",
        dest="metrics_enabled",
        action="store_false",
        default=None,
        help="Do not serve process metrics",
    )
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment/.env settings overridden by explicit flags."""
    overrides = {
        field: getattr(args, dest)
        for dest, field in _OVERRIDES.items()
        if getattr(args, dest, None) is not None
    }
    if args.metrics_enabled is not None:
        overrides["metrics_enabled"] = args.metrics_enabled

    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    if not settings.role_list:
        raise ConfigurationError("At least one role is required")
    if not settings.target_address_list:
        raise ConfigurationError("At least one target address is required")
    return settings


@main_with_error_handling()
def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(args)
    configure_logging(settings.log_level)

    asyncio.run(run_service(settings))
    return ExitCode.SUCCESS
