"""
File-based service discovery writer.

Collects refresh batches for one role from every backend host and keeps a
``file_sd`` JSON file in sync with them. The file is replaced atomically and
only when its rendered content changes.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from rolesd.discovery.channel import TargetGroupChannel
from rolesd.discovery.models import RefreshBatch, TargetGroup

if TYPE_CHECKING:
    from rolesd.discovery.tracker import RoleDiscovery
    from rolesd.metrics import DiscoveryMetrics

logger = structlog.get_logger()

FILE_SUFFIX = ".metrics.json"


def output_file_for(output_path: str | Path, role: str) -> Path:
    """Discovery file of ``role`` inside ``output_path``."""
    return Path(output_path) / f"{role}{FILE_SUFFIX}"


class FileSDWriter:
    """Materialize target groups of one role as a file_sd file."""

    def __init__(
        self,
        role: str,
        output_path: str | Path,
        *,
        metrics: DiscoveryMetrics | None = None,
    ) -> None:
        self.role = role
        self.path = output_file_for(output_path, role)
        self._metrics = metrics
        self._groups: dict[tuple[str, str], TargetGroup] = {}
        self._last_content: str | None = None
        self._write_lock = asyncio.Lock()
        self._log = logger.bind(role=role, path=str(self.path))

    @property
    def groups(self) -> dict[tuple[str, str], TargetGroup]:
        return dict(self._groups)

    def apply(self, host: str, batch: RefreshBatch) -> None:
        """Merge a batch from ``host``: tombstones drop their source."""
        for group in batch:
            key = (host, group.source)
            if group.is_tombstone:
                self._groups.pop(key, None)
            else:
                self._groups[key] = group

    def render(self) -> str:
        """Render the current groups as a file_sd JSON document."""
        entries: list[dict[str, Any]] = []
        for key in sorted(self._groups):
            group = self._groups[key]
            entries.append(
                {
                    "targets": sorted(group.addresses),
                    "labels": dict(sorted(group.labels.items())),
                }
            )
        return json.dumps(entries, indent=4)

    def write(self) -> bool:
        """
        Replace the file if its content changed.

        Returns:
            True if the file was rewritten
        """
        return self._write_content(self.render())

    async def flush(self) -> bool:
        """Render on the loop and write the file in a worker thread."""
        async with self._write_lock:
            return await asyncio.to_thread(self._write_content, self.render())

    def _write_content(self, content: str) -> bool:
        if self._last_content is None and self.path.exists():
            try:
                self._last_content = self.path.read_text(encoding="utf-8")
            except OSError as exc:
                self._log.warning("sd_file_read_failed", error=str(exc))

        if content == self._last_content:
            return False

        temp_file = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, self.path)
        except OSError as exc:
            self._log.error("sd_file_write_failed", error=str(exc))
            return False

        self._last_content = content
        self._log.info("sd_file_written", groups=len(self._groups))
        if self._metrics:
            self._metrics.record_file_write(self.role)
        return True

    async def consume(self, host: str, channel: TargetGroupChannel) -> None:
        """Apply every batch from ``channel`` until the producer closes it."""
        async for batch in channel:
            self.apply(host, batch)
            await self.flush()

    async def run(self, instances: Iterable[RoleDiscovery]) -> None:
        """Consume the channels of every instance of this role."""
        await asyncio.gather(
            *(self.consume(instance.host, instance.channel) for instance in instances)
        )
