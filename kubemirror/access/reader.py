"""Read path: local store first, live API when the store cannot be trusted.

Routing rules:

* ``get``  -- a synchronized store answers with the full object; an absent
  store, an unsynchronized store or a store miss falls through to a live
  get (the object may have been created after the last delivered event).
* ``list`` -- any label or field selector forces a live list because the
  store does not evaluate selector grammar.  Without selectors a
  synchronized store answers, filtered by exact namespace.
"""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubemirror.cache.fanout import WatchFanoutManager
from kubemirror.cache.store import ResourceStore
from kubemirror.discovery.resolver import CoordinateResolver
from kubemirror.errors import AccessError, deadline, translate_api_error
from kubemirror.models.resources import Coordinate, KubeObject, ListResult, ReadSource, ResourceSummary
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import read_requests_total

_log = get_logger("access.reader")


class ReadPath:
    """Serves get/list/describe for arbitrary kinds."""

    def __init__(
        self,
        connection: Any,
        resolver: CoordinateResolver,
        fanout: WatchFanoutManager | None = None,
    ) -> None:
        self._connection = connection
        self._resolver = resolver
        self._fanout = fanout

    async def get(self, kind: str, name: str, namespace: str = "", timeout: float | None = None) -> KubeObject:
        """Return the full object.

        Raises:
            ResourceNotFound: the live API has no such object.
            KindNotFound, DiscoveryUnavailable, UpstreamError, OperationCancelled.
        """
        return await self._get(kind, name, namespace, timeout, operation="get")

    async def describe(self, kind: str, name: str, namespace: str = "", timeout: float | None = None) -> KubeObject:
        """Full-object read, identical routing to ``get``."""
        return await self._get(kind, name, namespace, timeout, operation="describe")

    async def list(
        self,
        kind: str,
        namespace: str = "",
        label_selector: str = "",
        field_selector: str = "",
        timeout: float | None = None,
    ) -> ListResult:
        """Return ``{name, kind, namespace, labels}`` projections."""
        objects, from_cache = await self.list_objects(
            kind, namespace, label_selector, field_selector, timeout=timeout, operation="list"
        )
        return ListResult(
            items=[ResourceSummary.from_object(obj, kind) for obj in objects],
            served_from_cache=from_cache,
        )

    async def list_objects(
        self,
        kind: str,
        namespace: str = "",
        label_selector: str = "",
        field_selector: str = "",
        timeout: float | None = None,
        operation: str = "list",
    ) -> tuple[list[KubeObject], bool]:
        """Return full objects and whether the store answered.

        Objects served from the store are shared with it; treat them as
        read-only.
        """
        if not label_selector and not field_selector:
            store = self._synced_store(kind)
            if store is not None:
                read_requests_total.labels(operation=operation, source=ReadSource.CACHE).inc()
                return store.list(namespace), True

        if label_selector or field_selector:
            _log.debug("list_selector_bypasses_store", kind=kind, namespace=namespace)

        context = {"kind": kind, "namespace": namespace, "operation": operation}
        async with deadline(timeout, **context):
            coord = await self._resolve(kind, **context)
            try:
                body = await self._connection.list(
                    coord,
                    namespace=namespace,
                    label_selector=label_selector,
                    field_selector=field_selector,
                )
            except ApiException as exc:
                raise translate_api_error(exc, **context) from exc

        read_requests_total.labels(operation=operation, source=ReadSource.LIVE).inc()
        items = body.get("items") or []
        for item in items:
            _stamp_type(item, coord)
        return items, False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get(self, kind: str, name: str, namespace: str, timeout: float | None, operation: str) -> KubeObject:
        store = self._synced_store(kind)
        if store is not None:
            obj = store.get(namespace, name)
            if obj is not None:
                read_requests_total.labels(operation=operation, source=ReadSource.CACHE).inc()
                return obj

        context = {"kind": kind, "name": name, "namespace": namespace, "operation": operation}
        async with deadline(timeout, **context):
            coord = await self._resolve(kind, **context)
            try:
                obj = await self._connection.get(coord, name, namespace)
            except ApiException as exc:
                raise translate_api_error(exc, **context) from exc

        read_requests_total.labels(operation=operation, source=ReadSource.LIVE).inc()
        _stamp_type(obj, coord)
        return obj

    async def _resolve(self, kind: str, /, **context: str) -> Coordinate:
        try:
            return await self._resolver.resolve(kind)
        except AccessError as exc:
            raise exc.annotate(**context)

    def _synced_store(self, kind: str) -> ResourceStore | None:
        if self._fanout is None:
            return None
        store = self._fanout.store_for(kind)
        if store is None or not store.synced:
            return None
        return store


def _stamp_type(obj: KubeObject, coord: Coordinate) -> None:
    """List items come back without kind/apiVersion; restore them."""
    obj.setdefault("kind", coord.kind)
    obj.setdefault("apiVersion", coord.api_version)
