"""
Service wiring.

Builds one discovery instance per (host, role), one file writer per role and
the metrics endpoint, then runs them until the shared shutdown event fires.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from typing import Any

import structlog

from rolesd.adapter.file_sd import FileSDWriter
from rolesd.config.settings import Settings
from rolesd.discovery.manager import DiscoveryManager, build_configs
from rolesd.discovery.models import DiscoveryConfig, PartialBatchPolicy
from rolesd.metrics import DiscoveryMetrics, create_registry, start_metrics_server

logger = structlog.get_logger()


def install_signal_handlers(shutdown: asyncio.Event) -> None:
    """Set ``shutdown`` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, shutdown.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform/thread; rely on KeyboardInterrupt.
            logger.debug("signal_handler_unavailable", signal=signum)


def build_manager(
    settings: Settings,
    *,
    metrics: DiscoveryMetrics | None = None,
    client_factory: Callable[[DiscoveryConfig], Any] | None = None,
) -> DiscoveryManager:
    configs = build_configs(
        settings.target_address_list,
        settings.role_list,
        refresh_interval=settings.refresh_interval,
        timeout=settings.http_timeout,
        partial_batch_policy=PartialBatchPolicy(settings.partial_batch_policy),
    )
    return DiscoveryManager(
        configs,
        channel_buffer=settings.channel_buffer,
        metrics=metrics,
        client_factory=client_factory,
    )


async def run_service(
    settings: Settings,
    shutdown: asyncio.Event | None = None,
    *,
    handle_signals: bool = True,
    client_factory: Callable[[DiscoveryConfig], Any] | None = None,
) -> None:
    """Run discovery and file writers until ``shutdown`` is set."""
    metrics: DiscoveryMetrics | None = None
    if settings.metrics_enabled:
        registry = create_registry()
        metrics = DiscoveryMetrics(registry)
        start_metrics_server(settings.listen_address, registry)

    manager = build_manager(settings, metrics=metrics, client_factory=client_factory)

    writers = []
    for role, instances in manager.by_role().items():
        writer = FileSDWriter(role, settings.output_path, metrics=metrics)
        writers.append(writer.run(instances))

    if shutdown is None:
        shutdown = asyncio.Event()
    if handle_signals:
        install_signal_handlers(shutdown)

    logger.info(
        "service_started",
        hosts=settings.target_address_list,
        roles=settings.role_list,
        output_path=settings.output_path,
    )
    # Writers end once every producer has closed its channel.
    await asyncio.gather(manager.run(shutdown), *writers)
    logger.info("service_stopped")
