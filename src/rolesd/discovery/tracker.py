"""
Change tracker and refresh loop for one (backend, role) pair.

Each cycle queries the backend, builds a target group per returned series,
appends a tombstone for every source seen last cycle but missing now, and
sends the whole batch to the instance's channel. The set of sources emitted
as alive is replaced only after the batch has been handed off.

The loop checks the shutdown event only at loop entry and while waiting for
the next tick; an in-flight query always runs to completion.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from rolesd.core.errors import QueryError, RecordConversionError, RequestBuildError
from rolesd.discovery.builder import build_target_group, build_tombstone
from rolesd.discovery.channel import TargetGroupChannel
from rolesd.discovery.client import PrometheusQueryClient
from rolesd.discovery.models import (
    DiscoveryConfig,
    DiscoveryState,
    PartialBatchPolicy,
    QueryResult,
    RefreshBatch,
)

if TYPE_CHECKING:
    from rolesd.metrics import DiscoveryMetrics


class CycleOutcome(str, Enum):
    """Result of one refresh cycle."""

    EMITTED = "emitted"
    ABORTED = "aborted"  # Record failures under ABORT_CYCLE
    REQUEST_FAILED = "request_failed"  # Wait for the next tick
    QUERY_FAILED = "query_failed"  # Sleep one interval, then query again


class RoleDiscovery:
    """Discovery instance owning the source state of one (host, role) pair."""

    def __init__(
        self,
        config: DiscoveryConfig,
        channel: TargetGroupChannel,
        *,
        client: Any | None = None,
        logger: Any | None = None,
        metrics: DiscoveryMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.channel = channel
        if client is None:
            client = PrometheusQueryClient(config.address, timeout=config.timeout)
        if logger is None:
            logger = structlog.get_logger().bind(host=config.address, role=config.role)
        self._client = client
        self._log = logger
        self._metrics = metrics
        self._clock = clock

        self.old_source_list: set[str] = set()
        self.state = DiscoveryState.IDLE
        self.cycles = 0

    @property
    def host(self) -> str:
        return self.config.address

    @property
    def role(self) -> str:
        return self.config.role

    def build_batch(self, result: QueryResult) -> tuple[RefreshBatch, set[str], int]:
        """
        Diff a query result against the previous cycle.

        Returns:
            (batch, new source set, number of records that failed to convert).
            The batch lists alive groups in result order followed by
            tombstones in sorted source order.
        """
        batch: RefreshBatch = []
        new_source_list: set[str] = set()
        failures = 0

        for sample in result.samples:
            try:
                group = build_target_group(sample.metric, self.role)
            except RecordConversionError as exc:
                failures += 1
                self._log.error("record_conversion_failed", error=exc.message, **exc.details)
                continue
            batch.append(group)
            new_source_list.add(group.source)

        for source in sorted(self.old_source_list - new_source_list):
            batch.append(build_tombstone(source))

        return batch, new_source_list, failures

    async def cycle(self) -> CycleOutcome:
        """Run one query/diff/emit cycle; errors are logged, never raised."""
        started = self._clock()
        self.state = DiscoveryState.QUERYING

        try:
            result = await self._client.query_role(self.role)
        except RequestBuildError as exc:
            self._record_failure(exc.kind)
            self._log.error("query_build_failed", error=exc.message, **exc.details)
            return CycleOutcome.REQUEST_FAILED
        except QueryError as exc:
            self._record_failure(exc.kind)
            self._log.error("query_failed", kind=exc.kind, error=exc.message, **exc.details)
            return CycleOutcome.QUERY_FAILED

        self.state = DiscoveryState.DIFFING
        batch, new_source_list, failures = self.build_batch(result)

        if failures:
            self._record_failure(RecordConversionError.kind, failures)
            if self.config.partial_batch_policy is PartialBatchPolicy.ABORT_CYCLE:
                self._log.warning("cycle_aborted", failed_records=failures, records=len(result))
                return CycleOutcome.ABORTED

        self.state = DiscoveryState.EMITTING
        await self.channel.send(batch)
        self.old_source_list = new_source_list
        self.cycles += 1

        tombstones = sum(1 for group in batch if group.is_tombstone)
        self._log.debug(
            "batch_emitted",
            cycle=self.cycles,
            targets=len(new_source_list),
            tombstones=tombstones,
            failed_records=failures,
        )
        if self._metrics:
            self._metrics.record_refresh(
                self.host, self.role, self._clock() - started, len(new_source_list)
            )
        return CycleOutcome.EMITTED

    async def run(self, shutdown: asyncio.Event) -> None:
        """
        Refresh until ``shutdown`` is set, then close the channel.

        Query and decode failures sleep one refresh interval before the next
        query. Every other outcome waits for the next tick, measured from the
        start of the cycle.
        """
        interval = self.config.refresh_interval
        self._log.info("discovery_started", refresh_interval=interval)

        try:
            while not shutdown.is_set():
                started = self._clock()
                outcome = await self.cycle()

                if outcome is CycleOutcome.QUERY_FAILED:
                    if await self._wait(shutdown, interval):
                        break
                    continue

                self.state = DiscoveryState.WAITING
                remaining = max(0.0, interval - (self._clock() - started))
                if await self._wait(shutdown, remaining):
                    break
        finally:
            self.state = DiscoveryState.STOPPED
            await self.channel.close()
            self._log.info("discovery_stopped", cycles=self.cycles)

    async def _wait(self, shutdown: asyncio.Event, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; True if shutdown fired."""
        if shutdown.is_set():
            return True
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _record_failure(self, kind: str, count: int = 1) -> None:
        if self._metrics:
            self._metrics.record_failure(self.host, self.role, kind, count)
