"""In-memory stand-ins for the cluster connection.

``FakeCluster`` implements the ClusterConnection surface: discovery, CRUD,
merge patch, paginated lists, queue-driven watch streams, pod logs and
metrics.  Failures are injected per (method, kind) so tests can exercise
error paths without touching a real cluster.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException

from kubemirror.models.resources import APIResourceType, Coordinate

_RW = ("create", "delete", "get", "list", "patch", "update", "watch")

# ---------------------------------------------------------------------------
# Discovery fixture data
# ---------------------------------------------------------------------------

DEFAULT_RESOURCE_TYPES = [
    APIResourceType("", "v1", "Pod", "pods", True, _RW, "pod"),
    APIResourceType("", "v1", "Namespace", "namespaces", False, _RW, "namespace"),
    APIResourceType("", "v1", "Node", "nodes", False, _RW, "node"),
    APIResourceType("", "v1", "ConfigMap", "configmaps", True, _RW, "configmap"),
    APIResourceType("", "v1", "Event", "events", True, _RW, "event"),
    APIResourceType("", "v1", "Binding", "bindings", True, ("create",), "binding"),
    APIResourceType("apps", "v1", "Deployment", "deployments", True, _RW, "deployment"),
    APIResourceType("networking.k8s.io", "v1", "Ingress", "ingresses", True, _RW, "ingress"),
    APIResourceType("events.k8s.io", "v1", "Event", "events", True, _RW, "event"),
    APIResourceType("authentication.k8s.io", "v1", "TokenReview", "tokenreviews", False, ("create",), "tokenreview"),
]


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch and return the result."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def _labels_match(obj: dict[str, Any], selector: str) -> bool:
    labels = (obj.get("metadata") or {}).get("labels") or {}
    for term in filter(None, (t.strip() for t in selector.split(","))):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeCluster:
    """In-memory API server implementing the ClusterConnection surface."""

    def __init__(self, resource_types: list[APIResourceType] | None = None) -> None:
        self.resource_types = list(resource_types if resource_types is not None else DEFAULT_RESOURCE_TYPES)
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.discovery_calls = 0
        self.discovery_error: Exception | None = None
        self.logs: dict[tuple[str, str, str], str | ApiException] = {}
        self.pod_metrics: dict[tuple[str, str], dict[str, Any]] = {}
        self.node_metrics: dict[str, dict[str, Any]] = {}
        self.closed = False
        self._failures: dict[tuple[str, str], list[Any]] = {}
        self._watch_queues: dict[str, asyncio.Queue[dict[str, Any] | None]] = {}
        self._rv = 100

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def add(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        """Seed an object directly, bypassing call recording."""
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("resourceVersion", self._next_rv())
        self.objects[(kind, metadata.get("namespace", ""), metadata["name"])] = obj
        return obj

    def fail(self, method: str, kind: str, status: int, reason: str = "", times: int | None = None) -> None:
        """Make ``method`` on ``kind`` raise ApiException(status); forever when ``times`` is None."""
        self._failures[(method, kind)] = [ApiException(status=status, reason=reason or f"injected {status}"), times]

    def calls_of(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    async def emit(self, kind: str, event_type: str, obj: dict[str, Any]) -> None:
        await self._queue(kind).put({"type": event_type, "object": obj})

    async def end_stream(self, kind: str) -> None:
        await self._queue(kind).put(None)

    # ------------------------------------------------------------------
    # ClusterConnection surface
    # ------------------------------------------------------------------

    async def list_api_resource_types(self) -> list[APIResourceType]:
        self.discovery_calls += 1
        await asyncio.sleep(0)
        if self.discovery_error is not None:
            raise self.discovery_error
        return list(self.resource_types)

    async def get(self, coord: Coordinate, name: str, namespace: str = "") -> dict[str, Any]:
        self.calls.append(("get", coord.kind, namespace, name))
        self._maybe_fail("get", coord.kind)
        obj = self.objects.get(self._key(coord, namespace, name))
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(obj)

    async def list(
        self,
        coord: Coordinate,
        namespace: str = "",
        label_selector: str = "",
        field_selector: str = "",
        limit: int = 0,
        continue_token: str = "",
    ) -> dict[str, Any]:
        self.calls.append(("list", coord.kind, namespace, label_selector, field_selector, limit, continue_token))
        self._maybe_fail("list", coord.kind)
        items = [
            copy.deepcopy(obj)
            for (kind, ns, _), obj in sorted(self.objects.items())
            if kind == coord.kind and (not namespace or not coord.namespaced or ns == namespace)
        ]
        if label_selector:
            items = [obj for obj in items if _labels_match(obj, label_selector)]
        for obj in items:
            # List items carry no type information of their own.
            obj.pop("kind", None)
            obj.pop("apiVersion", None)
        next_token = ""
        if limit:
            offset = int(continue_token or 0)
            if offset + limit < len(items):
                next_token = str(offset + limit)
            items = items[offset : offset + limit]
        return {"metadata": {"resourceVersion": str(self._rv), "continue": next_token}, "items": items}

    async def create(self, coord: Coordinate, body: dict[str, Any], namespace: str = "") -> dict[str, Any]:
        name = body["metadata"]["name"]
        self.calls.append(("create", coord.kind, namespace, name))
        self._maybe_fail("create", coord.kind)
        key = self._key(coord, namespace, name)
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        obj = copy.deepcopy(body)
        if coord.namespaced:
            obj["metadata"]["namespace"] = namespace
        obj["metadata"]["resourceVersion"] = self._next_rv()
        self.objects[key] = obj
        return copy.deepcopy(obj)

    async def patch(
        self,
        coord: Coordinate,
        name: str,
        body: dict[str, Any],
        namespace: str = "",
        patch_type: str = "application/merge-patch+json",
    ) -> dict[str, Any]:
        self.calls.append(("patch", coord.kind, namespace, name, patch_type))
        self._maybe_fail("patch", coord.kind)
        key = self._key(coord, namespace, name)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        obj = merge_patch(self.objects[key], body)
        obj["metadata"]["resourceVersion"] = self._next_rv()
        self.objects[key] = obj
        return copy.deepcopy(obj)

    async def delete(self, coord: Coordinate, name: str, namespace: str = "") -> dict[str, Any]:
        self.calls.append(("delete", coord.kind, namespace, name))
        self._maybe_fail("delete", coord.kind)
        if self.objects.pop(self._key(coord, namespace, name), None) is None:
            raise ApiException(status=404, reason="Not Found")
        return {"kind": "Status", "status": "Success"}

    async def watch(self, coord: Coordinate, resource_version: str = "", timeout_seconds: int = 300):  # type: ignore[no-untyped-def]
        self.calls.append(("watch", coord.kind, resource_version))
        self._maybe_fail("watch", coord.kind)
        queue = self._queue(coord.kind)
        while True:
            event = await queue.get()
            if event is None:
                return
            yield event

    async def read_pod_log(self, namespace: str, pod: str, container: str = "", tail_lines: int = 100) -> str:
        self.calls.append(("read_pod_log", namespace, pod, container, tail_lines))
        value = self.logs.get((namespace, pod, container))
        if value is None:
            raise ApiException(status=404, reason="Not Found")
        if isinstance(value, ApiException):
            raise value
        return value

    async def pod_usage(self, namespace: str, pod: str) -> dict[str, Any]:
        self.calls.append(("pod_usage", namespace, pod))
        if (namespace, pod) not in self.pod_metrics:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.pod_metrics[(namespace, pod)])

    async def node_usage(self, node: str) -> dict[str, Any]:
        self.calls.append(("node_usage", node))
        if node not in self.node_metrics:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.node_metrics[node])

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _key(self, coord: Coordinate, namespace: str, name: str) -> tuple[str, str, str]:
        return (coord.kind, namespace if coord.namespaced else "", name)

    def _maybe_fail(self, method: str, kind: str) -> None:
        entry = self._failures.get((method, kind))
        if entry is None:
            return
        exc, remaining = entry
        if remaining is not None:
            if remaining <= 0:
                return
            entry[1] = remaining - 1
        raise exc

    def _queue(self, kind: str) -> asyncio.Queue[dict[str, Any] | None]:
        if kind not in self._watch_queues:
            self._watch_queues[kind] = asyncio.Queue()
        return self._watch_queues[kind]

    def _next_rv(self) -> str:
        self._rv += 1
        return str(self._rv)


# ---------------------------------------------------------------------------
# Object factories
# ---------------------------------------------------------------------------


def make_pod(name: str, namespace: str = "default", containers: list[str] | None = None, **labels: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
        "spec": {"containers": [{"name": c, "image": f"{c}:latest"} for c in (containers or ["app"])]},
    }


def make_deployment(name: str, namespace: str = "default", replicas: int = 1) -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": {"app": name}},
            "template": {
                "metadata": {"labels": {"app": name}},
                "spec": {"containers": [{"name": name, "image": "nginx:1.27"}]},
            },
        },
    }


