"""Tests for the batch hand-off channel."""

import asyncio

import pytest
from rolesd.discovery.builder import build_tombstone
from rolesd.discovery.channel import ChannelClosedError, TargetGroupChannel


@pytest.mark.asyncio
async def test_batches_delivered_whole_and_in_order():
    channel = TargetGroupChannel(maxsize=0)
    first = [build_tombstone("a:1"), build_tombstone("b:1")]
    second = [build_tombstone("c:1")]

    await channel.send(first)
    await channel.send(second)
    await channel.close()

    received = [batch async for batch in channel]

    assert received == [first, second]


@pytest.mark.asyncio
async def test_send_after_close_fails():
    channel = TargetGroupChannel()
    await channel.close()

    with pytest.raises(ChannelClosedError):
        await channel.send([])

    assert channel.closed


@pytest.mark.asyncio
async def test_receive_after_close_keeps_returning_none():
    channel = TargetGroupChannel()
    await channel.close()

    assert await channel.receive() is None
    assert await channel.receive() is None


@pytest.mark.asyncio
async def test_full_channel_blocks_producer():
    channel = TargetGroupChannel(maxsize=1)
    await channel.send([build_tombstone("a:1")])

    blocked = asyncio.create_task(channel.send([build_tombstone("b:1")]))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    await channel.receive()
    await asyncio.wait_for(blocked, timeout=1)
    assert channel.size() == 1


@pytest.mark.asyncio
async def test_sent_batch_is_copied():
    channel = TargetGroupChannel(maxsize=0)
    batch = [build_tombstone("a:1")]

    await channel.send(batch)
    batch.append(build_tombstone("b:1"))

    assert len(await channel.receive()) == 1


@pytest.mark.asyncio
async def test_close_on_full_channel_does_not_block():
    channel = TargetGroupChannel(maxsize=1)
    await channel.send([build_tombstone("a:1")])

    await asyncio.wait_for(channel.close(), timeout=1)

    assert channel.closed
    assert [b.source for b in await channel.receive()] == ["a:1"]
    assert await channel.receive() is None
    assert await channel.receive() is None


@pytest.mark.asyncio
async def test_close_on_full_channel_iteration_ends():
    channel = TargetGroupChannel(maxsize=2)
    await channel.send([build_tombstone("a:1")])
    await channel.send([build_tombstone("b:1")])
    await channel.close()

    batches = [batch async for batch in channel]

    assert [batch[0].source for batch in batches] == ["a:1", "b:1"]
