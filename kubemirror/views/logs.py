"""Pod log tails, aggregated across containers when none is named."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubemirror.errors import deadline, translate_api_error
from kubemirror.observability.logging import get_logger

if TYPE_CHECKING:
    from kubemirror.access.reader import ReadPath

_log = get_logger("views.logs")

DEFAULT_TAIL_CEILING = 300


class PodLogAggregator:
    """Fetches log tails for a pod.

    The requested tail length is clamped to ``tail_ceiling`` regardless of
    what the caller asks for.
    """

    def __init__(self, connection: Any, reader: ReadPath, tail_ceiling: int = DEFAULT_TAIL_CEILING) -> None:
        self._connection = connection
        self._reader = reader
        self._tail_ceiling = tail_ceiling

    async def logs(
        self,
        namespace: str,
        pod: str,
        container: str = "",
        tail_lines: int = 100,
        timeout: float | None = None,
    ) -> str:
        """Return the tail of ``pod``'s logs.

        With ``container`` set, or when the pod has exactly one container,
        the raw tail is returned.  Otherwise each container's tail follows a
        ``--- Logs for container <name> ---`` header and a failing container
        contributes its error text instead of aborting the whole result.
        """
        tail = max(1, min(tail_lines, self._tail_ceiling))
        context = {"kind": "Pod", "name": pod, "namespace": namespace, "operation": "logs"}

        async with deadline(timeout, **context):
            if container:
                return await self._read(namespace, pod, container, tail, context)

            pod_obj = await self._reader.get("Pod", pod, namespace)
            names = [c.get("name", "") for c in (pod_obj.get("spec") or {}).get("containers") or []]
            if len(names) <= 1:
                return await self._read(namespace, pod, names[0] if names else "", tail, context)

            sections: list[str] = []
            for name in names:
                sections.append(f"\n--- Logs for container {name} ---\n")
                try:
                    sections.append(await self._connection.read_pod_log(namespace, pod, name, tail))
                except ApiException as exc:
                    _log.warning("container_log_failed", namespace=namespace, pod=pod, container=name, error=str(exc))
                    sections.append(f"Error getting logs: {exc}\n")
            return "".join(sections)

    async def _read(self, namespace: str, pod: str, container: str, tail: int, context: dict[str, str]) -> str:
        try:
            return await self._connection.read_pod_log(namespace, pod, container, tail)
        except ApiException as exc:
            raise translate_api_error(exc, **context) from exc
