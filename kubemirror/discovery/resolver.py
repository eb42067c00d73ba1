"""Kind name to API coordinate resolution with a process-lifetime cache.

A kind maps to exactly one coordinate per session. Entries are inserted on
first resolution (or eagerly by the watch fan-out) and are never expired;
``invalidate`` is the explicit way to forget them.

Concurrency: lookups are plain dict reads; insertions take a
``threading.Lock`` so the resolver can also be shared with worker threads.
Concurrent misses are funnelled through one ``asyncio.Lock`` so a burst of
requests for the same unseen kind costs a single discovery round trip.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Protocol

from kubemirror.errors import DiscoveryUnavailable, KindNotFound
from kubemirror.models.resources import APIResourceType, Coordinate
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import coordinate_cache_misses_total

_log = get_logger("discovery.resolver")


class DiscoverySource(Protocol):
    async def list_api_resource_types(self) -> list[APIResourceType]: ...


class CoordinateResolver:
    """Resolves case-sensitive kind names to Coordinates.

    Example::

        resolver = CoordinateResolver(connection)
        coord = await resolver.resolve("Deployment")
        coord.api_version  # "apps/v1"
    """

    def __init__(self, discovery: DiscoverySource) -> None:
        self._discovery = discovery
        self._cache: dict[str, Coordinate] = {}
        self._insert_lock = threading.Lock()
        self._miss_lock = asyncio.Lock()

    async def resolve(self, kind: str) -> Coordinate:
        """Return the coordinate for ``kind``.

        Raises:
            KindNotFound:         discovery has no resource type with this Kind.
            DiscoveryUnavailable: the discovery call failed.
        """
        coord = self._cache.get(kind)
        if coord is not None:
            return coord

        async with self._miss_lock:
            coord = self._cache.get(kind)
            if coord is not None:
                return coord

            coordinate_cache_misses_total.inc()
            try:
                resource_types = await self._discovery.list_api_resource_types()
            except DiscoveryUnavailable as exc:
                raise DiscoveryUnavailable(exc.message, kind=kind, operation="resolve") from exc

            for resource_type in resource_types:
                if resource_type.kind == kind:
                    coord = self.register(resource_type.coordinate())
                    _log.debug(
                        "coordinate_resolved",
                        kind=kind,
                        group=coord.group,
                        version=coord.version,
                        plural=coord.plural,
                    )
                    return coord

        raise KindNotFound("resource type not found", kind=kind, operation="resolve")

    def register(self, coord: Coordinate) -> Coordinate:
        """Insert a coordinate unless the kind is already known.

        The first registration wins, so the answer for a kind never changes
        within a session. Returns the coordinate now cached for the kind.
        """
        with self._insert_lock:
            return self._cache.setdefault(coord.kind, coord)

    def known_kinds(self) -> list[str]:
        return sorted(self._cache)

    def invalidate(self, kind: str | None = None) -> None:
        """Forget one kind, or every kind when ``kind`` is None.

        The next ``resolve`` repeats discovery. Mirrored stores keep the
        coordinate they were started with.
        """
        with self._insert_lock:
            if kind is None:
                self._cache.clear()
            else:
                self._cache.pop(kind, None)
        _log.info("coordinate_cache_invalidated", kind=kind or "*")

    async def api_resources(
        self,
        include_namespaced: bool = True,
        include_cluster_scoped: bool = True,
    ) -> list[dict[str, Any]]:
        """List every preferred resource type, like ``kubectl api-resources``.

        The two scope filters are independent: namespaced types are kept
        only when ``include_namespaced`` is set and cluster-scoped types
        only when ``include_cluster_scoped`` is set.
        """
        resource_types = await self._discovery.list_api_resource_types()
        listing: list[dict[str, Any]] = []
        for rt in resource_types:
            if rt.namespaced and not include_namespaced:
                continue
            if not rt.namespaced and not include_cluster_scoped:
                continue
            listing.append(
                {
                    "name": rt.plural,
                    "singular_name": rt.singular,
                    "namespaced": rt.namespaced,
                    "kind": rt.kind,
                    "group": rt.group,
                    "version": rt.version,
                    "verbs": list(rt.verbs),
                }
            )
        return listing
