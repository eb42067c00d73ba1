"""Per-kind in-memory snapshot of cluster objects.

Objects are stored exactly as the API server delivered them, keyed by
``namespace/name`` (``name`` for cluster-scoped kinds). Only the kind's
watch loop writes to a store; any number of readers may consult it. Each
store has its own lock, so a slow watch for one kind never blocks reads of
another.
"""

from __future__ import annotations

import asyncio
import copy
import threading
from collections.abc import Iterable
from datetime import UTC, datetime

from kubemirror.models.resources import Coordinate, KubeObject, StoreStatus, WatchEventType
from kubemirror.observability.metrics import store_objects, store_synced


def object_key(namespace: str, name: str) -> str:
    """Return the store key for an object."""
    return f"{namespace}/{name}" if namespace else name


def _key_of(obj: KubeObject) -> str | None:
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None
    return object_key(str(metadata.get("namespace") or ""), str(name))


class ResourceStore:
    """Thread-safe indexed snapshot for one kind.

    ``synced`` becomes True once the initial full list has been applied and
    stays True across later relists. Reads before that point may be
    incomplete and must not be trusted.
    """

    def __init__(self, coordinate: Coordinate) -> None:
        self.coordinate = coordinate
        self.kind = coordinate.kind
        self._objects: dict[str, KubeObject] = {}
        self._lock = threading.Lock()
        self._resource_version = ""
        self._synced = asyncio.Event()
        self._failure_reason = ""
        self._last_updated: datetime | None = None
        store_synced.labels(kind=self.kind).set(0)

    # ------------------------------------------------------------------
    # Write interface (watch loop only)
    # ------------------------------------------------------------------

    def replace(self, items: Iterable[KubeObject], resource_version: str) -> None:
        """Swap in a complete listing and mark the store synchronized."""
        fresh: dict[str, KubeObject] = {}
        for obj in items:
            key = _key_of(obj)
            if key is not None:
                fresh[key] = obj

        with self._lock:
            self._objects = fresh
            self._resource_version = resource_version
            self._last_updated = datetime.now(tz=UTC)

        self._synced.set()
        store_synced.labels(kind=self.kind).set(1)
        store_objects.labels(kind=self.kind).set(len(fresh))

    def apply(self, event_type: str, obj: KubeObject) -> None:
        """Apply one watch delta in delivery order."""
        key = _key_of(obj)
        rv = str((obj.get("metadata") or {}).get("resourceVersion", ""))

        with self._lock:
            if event_type in (WatchEventType.ADDED, WatchEventType.MODIFIED) and key is not None:
                self._objects[key] = obj
            elif event_type == WatchEventType.DELETED and key is not None:
                self._objects.pop(key, None)
            if rv:
                self._resource_version = rv
            self._last_updated = datetime.now(tz=UTC)
            count = len(self._objects)

        store_objects.labels(kind=self.kind).set(count)

    def set_resource_version(self, resource_version: str) -> None:
        """Advance the resume point without touching objects (bookmarks)."""
        with self._lock:
            self._resource_version = resource_version

    def mark_failed(self, reason: str) -> None:
        """Record that this kind could not be mirrored."""
        with self._lock:
            self._failure_reason = reason or "unknown"

    # ------------------------------------------------------------------
    # Read interface
    # ------------------------------------------------------------------

    @property
    def synced(self) -> bool:
        return self._synced.is_set()

    @property
    def failed(self) -> bool:
        return bool(self._failure_reason)

    @property
    def resource_version(self) -> str:
        return self._resource_version

    def get(self, namespace: str, name: str) -> KubeObject | None:
        """Return a deep copy of one object, or None if absent."""
        key = object_key(namespace if self.coordinate.namespaced else "", name)
        with self._lock:
            obj = self._objects.get(key)
        return copy.deepcopy(obj) if obj is not None else None

    def list(self, namespace: str = "") -> list[KubeObject]:
        """Return the stored objects, filtered by exact namespace.

        An empty namespace returns every object. Cluster-scoped kinds ignore
        the filter. Returned objects are shared with the store and must be
        treated as read-only. Order is unspecified.
        """
        with self._lock:
            objects = list(self._objects.values())
        if not namespace or not self.coordinate.namespaced:
            return objects
        return [obj for obj in objects if (obj.get("metadata") or {}).get("namespace") == namespace]

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    async def wait_synced(self, timeout: float | None = None) -> bool:
        """Block until the initial list completes; False on timeout."""
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    def status(self) -> StoreStatus:
        with self._lock:
            return StoreStatus(
                kind=self.kind,
                synced=self._synced.is_set(),
                failed=bool(self._failure_reason),
                objects=len(self._objects),
                resource_version=self._resource_version,
                failure_reason=self._failure_reason,
            )
