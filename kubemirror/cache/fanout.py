"""Automatic watch fan-out across every list+watch capable kind.

At startup the manager walks server-preferred discovery and creates one
ResourceStore (with its KindWatcher) per kind whose verbs include both
``list`` and ``watch``.  Coordinates found on the way are registered with
the CoordinateResolver so later resolutions need no discovery round trip.

Large clusters can bound the fan-out with an include list, an exclude
list, or lazy mode, where a kind's watcher only starts on the first read
that asks for it.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any

from kubemirror.cache.store import ResourceStore
from kubemirror.cache.watcher import KindWatcher
from kubemirror.discovery.resolver import CoordinateResolver
from kubemirror.models.config import WatchConfig
from kubemirror.models.resources import Coordinate, StoreStatus
from kubemirror.observability.logging import get_logger

_log = get_logger("cache.fanout")


class WatchFanoutManager:
    """Owns every per-kind store and watch loop.

    Stores are created once and live until ``stop()``.  A kind whose watch
    cannot be established keeps a failed store; readers treat it as absent.
    """

    def __init__(self, connection: Any, resolver: CoordinateResolver, config: WatchConfig | None = None) -> None:
        self._connection = connection
        self._resolver = resolver
        self._config = config or WatchConfig()
        self._eligible: dict[str, Coordinate] = {}
        self._watchers: dict[str, KindWatcher] = {}
        self._lock = threading.Lock()
        self._started = False

    async def start(self) -> None:
        """Discover mirrorable kinds and start their watchers.

        Raises DiscoveryUnavailable if discovery fails.  Individual watch
        failures never abort startup.
        """
        if not self._config.enabled:
            _log.info("watch_fanout_disabled")
            self._started = True
            return

        resource_types = await self._connection.list_api_resource_types()
        skipped_verbs = 0
        for resource_type in resource_types:
            coord = resource_type.coordinate()
            # Every type is registered in discovery order, watchable or not.
            if self._resolver.register(coord) != coord:
                # Same Kind served by an earlier group; the first one wins.
                _log.debug("duplicate_kind_skipped", kind=coord.kind, group=coord.group)
                continue
            if not resource_type.supports("list", "watch"):
                skipped_verbs += 1
                continue
            if not self._accepts(coord.kind):
                continue
            self._eligible[coord.kind] = coord

        if not self._config.lazy:
            for kind in self._eligible:
                self._start_watcher(kind)

        self._started = True
        _log.info(
            "watch_fanout_started",
            eligible_kinds=len(self._eligible),
            started_watchers=len(self._watchers),
            skipped_without_list_watch=skipped_verbs,
            lazy=self._config.lazy,
        )

    def store_for(self, kind: str) -> ResourceStore | None:
        """Return the store for ``kind``, starting it on demand in lazy mode."""
        watcher = self._watchers.get(kind)
        if watcher is None and self._config.lazy and kind in self._eligible:
            watcher = self._start_watcher(kind)
        return watcher.store if watcher is not None else None

    async def all_synchronized(self, timeout: float | None = None) -> bool:
        """Wait until every started store has synchronized or failed.

        Returns False if ``timeout`` seconds pass first.
        """
        watchers = list(self._watchers.values())
        if not watchers:
            return True
        try:
            async with asyncio.timeout(timeout):
                await asyncio.gather(*(watcher.wait_established() for watcher in watchers))
        except TimeoutError:
            return False
        return True

    def status(self) -> list[StoreStatus]:
        return [watcher.store.status() for watcher in self._watchers.values()]

    def eligible_kinds(self) -> list[str]:
        return sorted(self._eligible)

    @property
    def started(self) -> bool:
        return self._started

    async def stop(self) -> None:
        """Cancel every watch loop."""
        watchers = list(self._watchers.values())
        await asyncio.gather(*(watcher.stop() for watcher in watchers), return_exceptions=True)
        _log.info("watch_fanout_stopped", watchers=len(watchers))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accepts(self, kind: str) -> bool:
        if self._config.include_kinds and kind not in self._config.include_kinds:
            return False
        return kind not in self._config.exclude_kinds

    def _start_watcher(self, kind: str) -> KindWatcher:
        with self._lock:
            watcher = self._watchers.get(kind)
            if watcher is None:
                watcher = KindWatcher(
                    self._connection,
                    ResourceStore(self._eligible[kind]),
                    timeout_seconds=self._config.timeout_seconds,
                    initial_list_attempts=self._config.initial_list_attempts,
                    page_size=self._config.list_page_size,
                )
                self._watchers[kind] = watcher
        watcher.start()
        return watcher
