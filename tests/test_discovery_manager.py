"""Tests for the discovery instance manager."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from rolesd.core.errors import ConfigurationError
from rolesd.discovery.manager import DiscoveryManager, build_configs
from rolesd.discovery.models import DiscoveryState, PartialBatchPolicy


def test_build_configs_crosses_hosts_and_roles():
    configs = build_configs(
        ["prom-a:9090", "prom-b:9090"],
        ["jmx", "node"],
        refresh_interval=15.0,
        timeout=5.0,
        partial_batch_policy=PartialBatchPolicy.ABORT_CYCLE,
    )

    assert [c.key for c in configs] == [
        ("prom-a:9090", "jmx"),
        ("prom-a:9090", "node"),
        ("prom-b:9090", "jmx"),
        ("prom-b:9090", "node"),
    ]
    assert all(c.refresh_interval == 15.0 for c in configs)
    assert all(c.partial_batch_policy is PartialBatchPolicy.ABORT_CYCLE for c in configs)


@pytest.mark.parametrize("hosts,roles", [([], ["jmx"]), (["prom:9090"], [])])
def test_build_configs_requires_hosts_and_roles(hosts, roles):
    with pytest.raises(ConfigurationError):
        build_configs(hosts, roles, refresh_interval=30.0, timeout=10.0)


def test_instances_are_independent():
    configs = build_configs(["prom:9090"], ["jmx", "kafka"], refresh_interval=30.0, timeout=10.0)

    manager = DiscoveryManager(configs, client_factory=lambda config: AsyncMock())

    first, second = manager.instances
    assert first.channel is not second.channel
    assert first.old_source_list is not second.old_source_list
    assert first._client is not second._client
    assert manager.by_role() == {"jmx": [first], "kafka": [second]}


def test_by_role_groups_hosts():
    configs = build_configs(
        ["prom-a:9090", "prom-b:9090"], ["jmx"], refresh_interval=30.0, timeout=10.0
    )

    manager = DiscoveryManager(configs, client_factory=lambda config: AsyncMock())

    assert [i.host for i in manager.by_role()["jmx"]] == ["prom-a:9090", "prom-b:9090"]


@pytest.mark.asyncio
async def test_same_source_on_two_roles_not_deduplicated(record, result):
    configs = build_configs(["prom:9090"], ["jmx", "kafka"], refresh_interval=30.0, timeout=10.0)

    def client_factory(config):
        client = AsyncMock()
        client.query_role.return_value = result(record("10.0.0.1", role=config.role))
        return client

    manager = DiscoveryManager(configs, channel_buffer=0, client_factory=client_factory)
    shutdown = asyncio.Event()

    task = asyncio.create_task(manager.run(shutdown))
    await asyncio.sleep(0.05)
    shutdown.set()
    await asyncio.wait_for(task, timeout=2)

    jmx, kafka = manager.instances
    jmx_batches = [b async for b in jmx.channel]
    kafka_batches = [b async for b in kafka.channel]
    assert jmx_batches[0][0].source == kafka_batches[0][0].source == "10.0.0.1:9404"
    assert jmx_batches[0][0].labels["__meta_role"] == "jmx"
    assert kafka_batches[0][0].labels["__meta_role"] == "kafka"
    assert all(i.state is DiscoveryState.STOPPED for i in manager.instances)


@pytest.mark.asyncio
async def test_shared_shutdown_stops_every_instance():
    configs = build_configs(
        ["prom-a:9090", "prom-b:9090"], ["jmx", "node"], refresh_interval=30.0, timeout=10.0
    )
    clients = []

    def client_factory(config):
        client = AsyncMock()
        clients.append(client)
        return client

    manager = DiscoveryManager(configs, client_factory=client_factory)
    shutdown = asyncio.Event()
    shutdown.set()

    await asyncio.wait_for(manager.run(shutdown), timeout=2)

    assert all(i.channel.closed for i in manager.instances)
    assert all(not c.query_role.await_count for c in clients)


@pytest.mark.asyncio
async def test_crashing_instance_does_not_stop_others(record, result):
    configs = build_configs(["prom:9090"], ["jmx", "kafka"], refresh_interval=30.0, timeout=10.0)

    def client_factory(config):
        client = AsyncMock()
        if config.role == "jmx":
            client.query_role.side_effect = RuntimeError("unexpected")
        else:
            client.query_role.return_value = result(record("10.0.0.1"))
        return client

    manager = DiscoveryManager(configs, channel_buffer=0, client_factory=client_factory)
    shutdown = asyncio.Event()

    task = asyncio.create_task(manager.run(shutdown))
    await asyncio.sleep(0.05)
    shutdown.set()
    await asyncio.wait_for(task, timeout=2)

    jmx, kafka = manager.instances
    assert jmx.channel.closed
    assert [b async for b in jmx.channel] == []
    assert len([b async for b in kafka.channel]) == 1
