"""
Discovery instance manager.

Creates one independent ``RoleDiscovery`` per (backend host, role) pair.
Instances share nothing but the shutdown event and the logging sink; two
roles on the same host may report the same source and are not deduplicated.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from rolesd.core.errors import ConfigurationError
from rolesd.discovery.channel import TargetGroupChannel
from rolesd.discovery.models import DiscoveryConfig, PartialBatchPolicy
from rolesd.discovery.tracker import RoleDiscovery

if TYPE_CHECKING:
    from rolesd.metrics import DiscoveryMetrics

logger = structlog.get_logger()


def build_configs(
    hosts: Iterable[str],
    roles: Iterable[str],
    *,
    refresh_interval: float,
    timeout: float,
    partial_batch_policy: PartialBatchPolicy = PartialBatchPolicy.EMIT_CONVERTED,
) -> list[DiscoveryConfig]:
    """Cross every backend host with every role, hosts first."""
    hosts = list(hosts)
    roles = list(roles)
    if not hosts:
        raise ConfigurationError("At least one target address is required")
    if not roles:
        raise ConfigurationError("At least one role is required")

    return [
        DiscoveryConfig(
            address=host,
            role=role,
            refresh_interval=refresh_interval,
            timeout=timeout,
            partial_batch_policy=partial_batch_policy,
        )
        for host in hosts
        for role in roles
    ]


@dataclass
class DiscoveryManager:
    """
    Own the discovery instances and their channels.

    Attributes:
        configs: One config per instance
        channel_buffer: Capacity of each instance's channel (0 = unbounded)
        metrics: Optional self-metrics shared by every instance
    """

    configs: list[DiscoveryConfig]
    channel_buffer: int = 1
    metrics: DiscoveryMetrics | None = None
    client_factory: Any | None = None

    instances: list[RoleDiscovery] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        for config in self.configs:
            channel = TargetGroupChannel(maxsize=self.channel_buffer)
            client = self.client_factory(config) if self.client_factory else None
            self.instances.append(
                RoleDiscovery(
                    config,
                    channel,
                    client=client,
                    logger=logger.bind(host=config.address, role=config.role),
                    metrics=self.metrics,
                )
            )

    def by_role(self) -> dict[str, list[RoleDiscovery]]:
        """Group instances by role, keeping host order."""
        grouped: dict[str, list[RoleDiscovery]] = {}
        for instance in self.instances:
            grouped.setdefault(instance.role, []).append(instance)
        return grouped

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run every instance until ``shutdown`` is set."""
        logger.info("discovery_manager_started", instances=len(self.instances))
        results = await asyncio.gather(
            *(instance.run(shutdown) for instance in self.instances),
            return_exceptions=True,
        )
        for instance, outcome in zip(self.instances, results, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "discovery_instance_crashed",
                    host=instance.host,
                    role=instance.role,
                    error=str(outcome),
                )
        logger.info("discovery_manager_stopped")
