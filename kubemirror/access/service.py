"""ResourceAccess: the single handle consumers use to reach the cluster.

Wires the resolver, the watch fan-out, the read and write paths and the
derived views around one ClusterConnection.  The application bootstrap
constructs it once and passes it to the REST API and the CLI.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from kubemirror.access.reader import ReadPath
from kubemirror.access.writer import WritePath
from kubemirror.cache.fanout import WatchFanoutManager
from kubemirror.discovery.resolver import CoordinateResolver
from kubemirror.models.config import KubeMirrorConfig
from kubemirror.models.resources import KubeObject, ListResult, StoreStatus
from kubemirror.views.events import list_events
from kubemirror.views.ingress import list_ingresses
from kubemirror.views.logs import PodLogAggregator
from kubemirror.views.usage import UsageView


class ResourceAccess:
    """Facade over every resource access operation."""

    def __init__(self, connection: Any, config: KubeMirrorConfig | None = None) -> None:
        self._config = config or KubeMirrorConfig()
        self.connection = connection
        self.resolver = CoordinateResolver(connection)
        self.fanout = WatchFanoutManager(connection, self.resolver, self._config.watch)
        self.reader = ReadPath(connection, self.resolver, self.fanout)
        self.writer = WritePath(connection, self.resolver)
        self.log_view = PodLogAggregator(connection, self.reader, tail_ceiling=self._config.logs.tail_ceiling)
        self.usage_view = UsageView(connection)

    # Lifecycle

    async def start(self) -> None:
        await self.fanout.start()

    async def stop(self) -> None:
        await self.fanout.stop()

    async def all_synchronized(self, timeout: float | None = None) -> bool:
        return await self.fanout.all_synchronized(timeout)

    def status(self) -> list[StoreStatus]:
        return self.fanout.status()

    # Reads

    async def get(self, kind: str, name: str, namespace: str = "", timeout: float | None = None) -> KubeObject:
        return await self.reader.get(kind, name, namespace, timeout)

    async def describe(self, kind: str, name: str, namespace: str = "", timeout: float | None = None) -> KubeObject:
        return await self.reader.describe(kind, name, namespace, timeout)

    async def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: str = "",
        field_selector: str = "",
        timeout: float | None = None,
    ) -> ListResult:
        return await self.reader.list(kind, namespace, label_selector, field_selector, timeout)

    async def api_resources(
        self,
        include_namespaced: bool = True,
        include_cluster_scoped: bool = True,
    ) -> list[dict[str, Any]]:
        return await self.resolver.api_resources(include_namespaced, include_cluster_scoped)

    # Writes

    async def upsert(
        self,
        kind: str,
        namespace: str,
        manifest: str | Mapping[str, Any],
        timeout: float | None = None,
    ) -> KubeObject:
        return await self.writer.upsert(kind, namespace, manifest, timeout)

    async def delete(self, kind: str, name: str, namespace: str = "", timeout: float | None = None) -> None:
        await self.writer.delete(kind, name, namespace, timeout)

    async def rollout_restart(
        self, kind: str, name: str, namespace: str = "", timeout: float | None = None
    ) -> KubeObject:
        return await self.writer.rollout_restart(kind, name, namespace, timeout)

    # Views

    async def logs(
        self,
        namespace: str,
        pod: str,
        container: str = "",
        tail_lines: int = 100,
        timeout: float | None = None,
    ) -> str:
        return await self.log_view.logs(namespace, pod, container, tail_lines, timeout)

    async def pod_usage(self, namespace: str, pod: str, timeout: float | None = None) -> dict[str, Any]:
        return await self.usage_view.pod_usage(namespace, pod, timeout)

    async def node_usage(self, node: str, timeout: float | None = None) -> dict[str, Any]:
        return await self.usage_view.node_usage(node, timeout)

    async def list_ingresses(
        self, host: str = "", namespace: str = "", timeout: float | None = None
    ) -> list[dict[str, Any]]:
        return await list_ingresses(self.reader, host, namespace, timeout)

    async def list_events(
        self, namespace: str = "", label_selector: str = "", timeout: float | None = None
    ) -> list[dict[str, Any]]:
        return await list_events(self.reader, namespace, label_selector, timeout)
