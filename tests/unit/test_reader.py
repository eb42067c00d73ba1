"""Tests for read routing between the local store and the live API."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from kubemirror.access.reader import ReadPath
from kubemirror.cache.fanout import WatchFanoutManager
from kubemirror.discovery.resolver import CoordinateResolver
from kubemirror.errors import KindNotFound, OperationCancelled, ResourceNotFound, UpstreamError
from kubemirror.models.config import WatchConfig
from tests.fakes import FakeCluster, make_pod


@pytest.fixture
async def cached_reader(fake_cluster: FakeCluster) -> AsyncIterator[ReadPath]:
    """ReadPath over a synchronized Pod store."""
    fake_cluster.add("Pod", make_pod("web", "prod", app="web"))
    fake_cluster.add("Pod", make_pod("db", "prod", app="db"))
    fake_cluster.add("Pod", make_pod("web", "dev", app="web"))
    resolver = CoordinateResolver(fake_cluster)
    fanout = WatchFanoutManager(fake_cluster, resolver, WatchConfig(include_kinds=["Pod"]))
    await fanout.start()
    assert await fanout.all_synchronized(timeout=2)
    fake_cluster.calls.clear()
    yield ReadPath(fake_cluster, resolver, fanout)
    await fanout.stop()


@pytest.fixture
def live_reader(fake_cluster: FakeCluster) -> ReadPath:
    return ReadPath(fake_cluster, CoordinateResolver(fake_cluster))


# ---------------------------------------------------------------------------
# get / describe
# ---------------------------------------------------------------------------


class TestGet:
    async def test_served_from_store(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        obj = await cached_reader.get("Pod", "web", "prod")
        assert obj["metadata"]["labels"] == {"app": "web"}
        assert obj["kind"] == "Pod"
        assert fake_cluster.calls == []

    async def test_store_miss_falls_through_to_live(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        # Exists on the server but no watch event has delivered it yet.
        fake_cluster.add("Pod", make_pod("fresh", "prod"))
        obj = await cached_reader.get("Pod", "fresh", "prod")
        assert obj["metadata"]["name"] == "fresh"
        assert fake_cluster.calls_of("get") == [("get", "Pod", "prod", "fresh")]

    async def test_unmirrored_kind_goes_live(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        fake_cluster.add("ConfigMap", {"metadata": {"name": "cfg", "namespace": "prod"}, "data": {"a": "1"}})
        obj = await cached_reader.get("ConfigMap", "cfg", "prod")
        assert obj["data"] == {"a": "1"}
        assert obj["kind"] == "ConfigMap"
        assert obj["apiVersion"] == "v1"

    async def test_not_found(self, live_reader: ReadPath) -> None:
        with pytest.raises(ResourceNotFound) as info:
            await live_reader.get("Pod", "ghost", "prod")
        assert (info.value.kind, info.value.name, info.value.namespace) == ("Pod", "ghost", "prod")
        assert info.value.operation == "get"

    async def test_unknown_kind(self, live_reader: ReadPath) -> None:
        with pytest.raises(KindNotFound) as info:
            await live_reader.get("Widget", "w", "prod")
        assert info.value.operation == "get"
        assert info.value.name == "w"

    async def test_upstream_error(self, live_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        fake_cluster.fail("get", "Pod", 500, "Internal Server Error")
        with pytest.raises(UpstreamError) as info:
            await live_reader.get("Pod", "web", "prod")
        assert info.value.status == 500

    async def test_describe_routes_like_get(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        obj = await cached_reader.describe("Pod", "db", "prod")
        assert obj["metadata"]["name"] == "db"
        assert fake_cluster.calls == []

    async def test_deadline(self, live_reader: ReadPath, fake_cluster: FakeCluster, monkeypatch: pytest.MonkeyPatch) -> None:
        import asyncio

        async def _hang(*_args: object, **_kwargs: object) -> dict:
            await asyncio.sleep(5)
            return {}

        monkeypatch.setattr(fake_cluster, "get", _hang)
        with pytest.raises(OperationCancelled) as info:
            await live_reader.get("Pod", "web", "prod", timeout=0.05)
        assert info.value.operation == "get"


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


class TestList:
    async def test_served_from_store(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        result = await cached_reader.list("Pod", "prod")
        assert result.served_from_cache is True
        assert sorted(item.name for item in result.items) == ["db", "web"]
        assert fake_cluster.calls == []

    async def test_all_namespaces(self, cached_reader: ReadPath) -> None:
        result = await cached_reader.list("Pod")
        assert len(result.items) == 3

    async def test_label_selector_forces_live(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        result = await cached_reader.list("Pod", "prod", label_selector="app=web")
        assert result.served_from_cache is False
        assert [item.name for item in result.items] == ["web"]
        assert len(fake_cluster.calls_of("list")) == 1

    async def test_field_selector_forces_live(self, cached_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        result = await cached_reader.list("Pod", "prod", field_selector="status.phase=Running")
        assert result.served_from_cache is False
        assert fake_cluster.calls_of("list")[0][4] == "status.phase=Running"

    async def test_live_items_carry_kind(self, live_reader: ReadPath, fake_cluster: FakeCluster) -> None:
        fake_cluster.add("Deployment", {"metadata": {"name": "api", "namespace": "prod", "labels": {"tier": "be"}}})
        result = await live_reader.list("Deployment", "prod")
        assert result.served_from_cache is False
        assert result.items[0].to_dict() == {"name": "api", "kind": "Deployment", "namespace": "prod", "labels": {"tier": "be"}}

    async def test_empty_result(self, live_reader: ReadPath) -> None:
        result = await live_reader.list("Pod", "empty")
        assert result.items == []

    async def test_failed_store_served_live(self, fake_cluster: FakeCluster) -> None:
        fake_cluster.fail("list", "Pod", 403, "Forbidden", times=1)
        fake_cluster.add("Pod", make_pod("web", "prod"))
        resolver = CoordinateResolver(fake_cluster)
        fanout = WatchFanoutManager(fake_cluster, resolver, WatchConfig(include_kinds=["Pod"]))
        await fanout.start()
        await fanout.all_synchronized(timeout=2)
        reader = ReadPath(fake_cluster, resolver, fanout)

        result = await reader.list("Pod", "prod")
        assert result.served_from_cache is False
        assert [item.name for item in result.items] == ["web"]
        await fanout.stop()
