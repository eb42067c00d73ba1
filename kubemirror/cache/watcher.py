"""List-then-watch loop that keeps one ResourceStore current.

Lifecycle of a KindWatcher task:

1. Initial paginated list.  403/404/405 (the credentials or the server
   cannot list this kind) fail immediately; any other error is retried with
   back-off up to ``initial_list_attempts`` times.  If the list never
   succeeds the store is marked failed and the task ends: that kind is
   served from the live API until the process restarts.
2. Watch from the list's resourceVersion, applying deltas in delivery
   order.  BOOKMARK events only advance the resume point.
3. When the server closes the stream normally (timeoutSeconds elapsed) the
   watch resumes from the last resourceVersion.
4. An ERROR event with code 410 (Gone), or a broken stream, triggers a
   relist followed by a fresh watch, with exponential back-off (1 s
   doubling, capped at 30 s) between failed attempts.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubemirror.cache.store import ResourceStore
from kubemirror.errors import is_status
from kubemirror.models.resources import Coordinate, KubeObject, WatchEventType
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import watch_establish_failures_total, watch_restarts_total

_BACKOFF_INITIAL_S = 1.0
_BACKOFF_MAX_S = 30.0
_PERMANENT_LIST_STATUSES = frozenset({401, 403, 404, 405})
_GONE = 410


class WatchSource(Protocol):
    async def list(
        self,
        coord: Coordinate,
        namespace: str = "",
        label_selector: str = "",
        field_selector: str = "",
        limit: int = 0,
        continue_token: str = "",
    ) -> KubeObject: ...

    def watch(self, coord: Coordinate, resource_version: str = "", timeout_seconds: int = 300) -> Any: ...


class _ResourceVersionExpired(Exception):
    """The watch resume point is older than the server's history."""


class KindWatcher:
    """Owns the watch loop for a single kind."""

    def __init__(
        self,
        source: WatchSource,
        store: ResourceStore,
        timeout_seconds: int = 300,
        initial_list_attempts: int = 3,
        page_size: int = 500,
        backoff_initial: float = _BACKOFF_INITIAL_S,
        backoff_max: float = _BACKOFF_MAX_S,
    ) -> None:
        self._source = source
        self._store = store
        self._coord = store.coordinate
        self._timeout_seconds = timeout_seconds
        self._initial_list_attempts = max(1, initial_list_attempts)
        self._page_size = page_size
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._log = get_logger("cache.watcher", kind=store.kind)
        self._task: asyncio.Task[None] | None = None

    @property
    def store(self) -> ResourceStore:
        return self._store

    def start(self) -> asyncio.Task[None]:
        """Schedule the watch loop as a background task (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"watch-{self._store.kind}")
        return self._task

    async def wait_established(self) -> bool:
        """Wait until the store is synchronized or the loop gave up.

        Returns True if the store synchronized, False if the kind failed.
        """
        if self._store.synced or self._task is None:
            return self._store.synced
        sync_waiter = asyncio.ensure_future(self._store.wait_synced())
        try:
            await asyncio.wait({sync_waiter, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not sync_waiter.done():
                sync_waiter.cancel()
        return self._store.synced

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        """Establish the mirror, then keep it current until cancelled."""
        if not await self._establish():
            return

        loop = asyncio.get_running_loop()
        backoff = self._backoff_initial
        while True:
            started = loop.time()
            try:
                await self._watch_once()
                # A stream closed right after opening would otherwise spin.
                if loop.time() - started < self._backoff_initial:
                    await asyncio.sleep(self._backoff_initial)
                backoff = self._backoff_initial
                continue
            except _ResourceVersionExpired:
                self._log.info("watch_resource_version_expired", resource_version=self._store.resource_version)
            except ApiException as exc:
                self._log.warning("watch_stream_failed", status=exc.status, reason=exc.reason)
            except Exception as exc:
                # Only cancellation ends the loop.
                self._log.warning("watch_stream_failed", error=str(exc), error_type=type(exc).__name__)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)

            watch_restarts_total.labels(kind=self._store.kind).inc()
            while True:
                try:
                    await self._relist()
                    break
                except ApiException as exc:
                    self._log.warning("relist_failed", status=exc.status, reason=exc.reason, retry_in=backoff)
                except Exception as exc:
                    self._log.warning("relist_failed", error=str(exc), error_type=type(exc).__name__, retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _establish(self) -> bool:
        backoff = self._backoff_initial
        last_error = ""
        for attempt in range(1, self._initial_list_attempts + 1):
            try:
                await self._relist()
                self._log.info("store_synced", objects=len(self._store), resource_version=self._store.resource_version)
                return True
            except ApiException as exc:
                last_error = f"{exc.status} {exc.reason}"
                if is_status(exc, *_PERMANENT_LIST_STATUSES):
                    break
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"

            self._log.warning("initial_list_failed", attempt=attempt, error=last_error, retry_in=backoff)
            if attempt < self._initial_list_attempts:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)

        self._store.mark_failed(last_error)
        watch_establish_failures_total.labels(kind=self._store.kind).inc()
        self._log.error("watch_establish_failed", error=last_error, fallback="live")
        return False

    async def _relist(self) -> None:
        """Page through a full list and swap it into the store."""
        items: list[KubeObject] = []
        continue_token = ""
        resource_version = ""
        while True:
            page = await self._source.list(self._coord, limit=self._page_size, continue_token=continue_token)
            for item in page.get("items") or []:
                item.setdefault("kind", self._coord.kind)
                item.setdefault("apiVersion", self._coord.api_version)
                items.append(item)
            metadata = page.get("metadata") or {}
            resource_version = str(metadata.get("resourceVersion", "")) or resource_version
            continue_token = str(metadata.get("continue") or "")
            if not continue_token:
                break
        self._store.replace(items, resource_version)

    async def _watch_once(self) -> None:
        """Consume one watch stream until the server closes it."""
        stream = self._source.watch(
            self._coord,
            resource_version=self._store.resource_version,
            timeout_seconds=self._timeout_seconds,
        )
        async for event in stream:
            event_type = str(event.get("type", ""))
            obj = event.get("object") or {}

            if event_type == WatchEventType.ERROR:
                if int(obj.get("code", 0) or 0) == _GONE:
                    raise _ResourceVersionExpired()
                raise ApiException(status=int(obj.get("code", 0) or 0), reason=str(obj.get("message", "")))

            if event_type == WatchEventType.BOOKMARK:
                rv = str((obj.get("metadata") or {}).get("resourceVersion", ""))
                if rv:
                    self._store.set_resource_version(rv)
                continue

            if event_type in (WatchEventType.ADDED, WatchEventType.MODIFIED, WatchEventType.DELETED):
                obj.setdefault("kind", self._coord.kind)
                obj.setdefault("apiVersion", self._coord.api_version)
                self._store.apply(event_type, obj)
