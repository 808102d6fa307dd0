"""
Data models for role-based target discovery.

A query against the metrics backend yields one ``Sample`` per matching ``up``
series. Each sample's label set is turned into a ``TargetGroup`` keyed by a
stable ``source`` identity; a cycle's groups (plus tombstones) form one
``RefreshBatch``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Prefix applied to backend labels so they never collide with scrape labels.
META_LABEL_PREFIX = "__meta_"

# Label holding a target's scrape address.
ADDRESS_LABEL = "__address__"

# Label copied verbatim into a group's label set.
METRIC_NAME_LABEL = "__name__"

DEFAULT_REFRESH_INTERVAL = 30.0

MetricRecord = Mapping[str, str]


class PartialBatchPolicy(str, Enum):
    """What a cycle does when some records fail to convert."""

    EMIT_CONVERTED = "emit_converted"  # Emit the groups that did convert
    ABORT_CYCLE = "abort_cycle"  # Emit nothing, keep previous state


class DiscoveryState(str, Enum):
    """Lifecycle states of a discovery instance."""

    IDLE = "idle"
    QUERYING = "querying"
    DIFFING = "diffing"
    EMITTING = "emitting"
    WAITING = "waiting"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Sample:
    """One row of an instant-vector query result."""

    metric: Any
    value: Any = None


@dataclass(frozen=True)
class QueryResult:
    """Decoded body of a successful /api/v1/query call."""

    status: str
    result_type: str
    samples: tuple[Sample, ...] = ()

    def __len__(self) -> int:
        return len(self.samples)


@dataclass
class TargetGroup:
    """A named set of targets sharing one source identity."""

    source: str
    labels: dict[str, str] = field(default_factory=dict)
    targets: list[dict[str, str]] = field(default_factory=list)

    @property
    def is_tombstone(self) -> bool:
        return not self.targets

    @property
    def addresses(self) -> list[str]:
        return [t[ADDRESS_LABEL] for t in self.targets if ADDRESS_LABEL in t]


RefreshBatch = list[TargetGroup]


@dataclass(frozen=True)
class DiscoveryConfig:
    """
    Configuration of one discovery instance.

    Attributes:
        address: Backend address, ``host:port`` or a full http(s) URL
        role: Value (regex) matched against the ``role`` label
        refresh_interval: Seconds between cycles
        timeout: HTTP timeout for one query, in seconds
        partial_batch_policy: Handling of per-record conversion failures
    """

    address: str
    role: str
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    timeout: float = 10.0
    partial_batch_policy: PartialBatchPolicy = PartialBatchPolicy.EMIT_CONVERTED

    @property
    def key(self) -> tuple[str, str]:
        return (self.address, self.role)
