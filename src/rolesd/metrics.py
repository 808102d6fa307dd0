"""
Process and discovery self-metrics.

Exposes runtime collectors plus per-instance refresh counters on a plain
Prometheus exposition endpoint.
"""

from __future__ import annotations

import platform

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    Info,
    PlatformCollector,
    ProcessCollector,
    start_http_server,
)

from rolesd import __version__
from rolesd.core.errors import ConfigurationError

logger = structlog.get_logger()


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (host may be empty) into its parts."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(
            f"Invalid listen address: {address!r}", details={"expected": "host:port"}
        )
    return host.strip("[]") or "0.0.0.0", int(port)


def create_registry() -> CollectorRegistry:
    """Registry with process, platform and GC collectors and build info."""
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)

    build_info = Info("rolesd_build", "Build information", registry=registry)
    build_info.info({"version": __version__, "python_version": platform.python_version()})
    return registry


class DiscoveryMetrics:
    """Self-monitoring metrics for discovery instances."""

    def __init__(self, registry: CollectorRegistry | None = None, prefix: str = "rolesd_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.refreshes_total = Counter(
            f"{prefix}sd_refreshes_total",
            "Number of refresh cycles that emitted a batch",
            ["host", "role"],
            registry=registry,
        )

        self.refresh_failures_total = Counter(
            f"{prefix}sd_refresh_failures_total",
            "Number of failed queries or records, by error kind",
            ["host", "role", "kind"],
            registry=registry,
        )

        self.refresh_duration_seconds = Histogram(
            f"{prefix}sd_refresh_duration_seconds",
            "Duration of a successful refresh cycle in seconds",
            ["host", "role"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.discovered_targets = Gauge(
            f"{prefix}sd_discovered_targets",
            "Number of alive sources in the last emitted batch",
            ["host", "role"],
            registry=registry,
        )

        self.file_writes_total = Counter(
            f"{prefix}sd_file_writes_total",
            "Number of discovery file rewrites",
            ["role"],
            registry=registry,
        )

    def record_refresh(self, host: str, role: str, duration: float, targets: int) -> None:
        self.refreshes_total.labels(host=host, role=role).inc()
        self.refresh_duration_seconds.labels(host=host, role=role).observe(duration)
        self.discovered_targets.labels(host=host, role=role).set(targets)

    def record_failure(self, host: str, role: str, kind: str, count: int = 1) -> None:
        self.refresh_failures_total.labels(host=host, role=role, kind=kind).inc(count)

    def record_file_write(self, role: str) -> None:
        self.file_writes_total.labels(role=role).inc()


def start_metrics_server(listen_address: str, registry: CollectorRegistry) -> None:
    """Serve ``registry`` on ``listen_address`` from a background thread."""
    host, port = parse_listen_address(listen_address)
    start_http_server(port, addr=host, registry=registry)
    logger.info("metrics_server_started", address=host, port=port)
