"""Point-in-time CPU/memory usage from the metrics.k8s.io API."""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubemirror.errors import deadline, translate_api_error


class UsageView:
    """Pass-through projections of PodMetrics and NodeMetrics."""

    def __init__(self, connection: Any) -> None:
        self._connection = connection

    async def pod_usage(self, namespace: str, pod: str, timeout: float | None = None) -> dict[str, Any]:
        context = {"kind": "PodMetrics", "name": pod, "namespace": namespace, "operation": "pod_usage"}
        async with deadline(timeout, **context):
            try:
                raw = await self._connection.pod_usage(namespace, pod)
            except ApiException as exc:
                raise translate_api_error(exc, **context) from exc

        return {
            "pod_name": pod,
            "namespace": namespace,
            "timestamp": raw.get("timestamp", ""),
            "window": raw.get("window", ""),
            "containers": [
                {
                    "name": container.get("name", ""),
                    "cpu": (container.get("usage") or {}).get("cpu", ""),
                    "memory": (container.get("usage") or {}).get("memory", ""),
                }
                for container in raw.get("containers") or []
            ],
        }

    async def node_usage(self, node: str, timeout: float | None = None) -> dict[str, Any]:
        context = {"kind": "NodeMetrics", "name": node, "operation": "node_usage"}
        async with deadline(timeout, **context):
            try:
                raw = await self._connection.node_usage(node)
            except ApiException as exc:
                raise translate_api_error(exc, **context) from exc

        usage = raw.get("usage") or {}
        return {
            "node_name": node,
            "timestamp": raw.get("timestamp", ""),
            "window": raw.get("window", ""),
            "usage": {"cpu": usage.get("cpu", ""), "memory": usage.get("memory", "")},
        }
