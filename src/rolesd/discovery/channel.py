from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from rolesd.discovery.models import RefreshBatch


class ChannelClosedError(RuntimeError):
    """Raised when sending on a closed channel."""


_CLOSED = object()


class TargetGroupChannel:
    """
    Single-producer/single-consumer hand-off of refresh batches.

    A whole batch is one queue item, so the consumer sees all of it or none.
    A bounded channel blocks the producer while full. The producer owns the
    lifecycle and calls ``close()`` once it stops; iteration then ends after
    the remaining batches are drained.
    """

    def __init__(self, maxsize: int = 1) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._marker_queued = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, batch: RefreshBatch) -> None:
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        await self._queue.put(list(batch))

    async def close(self) -> None:
        """
        Mark the channel closed without waiting for the consumer.

        On a full channel the end marker is queued once the consumer frees a
        slot, so pending batches are still delivered first.
        """
        if self._closed:
            return
        self._closed = True
        self._queue_marker()

    def _queue_marker(self) -> None:
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            return
        self._marker_queued = True

    async def receive(self) -> RefreshBatch | None:
        """Next batch, or None once the channel is closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker for any later receive() call.
            self._queue.put_nowait(_CLOSED)
            return None
        if self._closed and not self._marker_queued:
            self._queue_marker()
        return item  # type: ignore[return-value]

    def size(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> AsyncIterator[RefreshBatch]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RefreshBatch]:
        while True:
            batch = await self.receive()
            if batch is None:
                return
            yield batch
