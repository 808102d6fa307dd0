"""
Role-based target discovery.

Polls the metrics backend for ``up`` series of one role and turns them into
target groups, tracking which sources appeared or disappeared between cycles.
"""

from rolesd.discovery.builder import build_target_group, build_tombstone, derive_source
from rolesd.discovery.channel import ChannelClosedError, TargetGroupChannel
from rolesd.discovery.client import PrometheusQueryClient, build_role_query
from rolesd.discovery.manager import DiscoveryManager, build_configs
from rolesd.discovery.models import (
    DiscoveryConfig,
    DiscoveryState,
    PartialBatchPolicy,
    QueryResult,
    Sample,
    TargetGroup,
)
from rolesd.discovery.tracker import CycleOutcome, RoleDiscovery

__all__ = [
    "ChannelClosedError",
    "CycleOutcome",
    "DiscoveryConfig",
    "DiscoveryManager",
    "DiscoveryState",
    "PartialBatchPolicy",
    "PrometheusQueryClient",
    "QueryResult",
    "RoleDiscovery",
    "Sample",
    "TargetGroup",
    "TargetGroupChannel",
    "build_configs",
    "build_role_query",
    "build_target_group",
    "build_tombstone",
    "derive_source",
]
