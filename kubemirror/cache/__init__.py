"""Watch-synchronized local mirror of cluster state.

Submodules:
    store   -- ResourceStore: per-kind thread-safe snapshot.
    watcher -- KindWatcher: list, watch, relist with back-off.
    fanout  -- WatchFanoutManager: one watcher per list+watch capable kind.
"""

from kubemirror.cache.fanout import WatchFanoutManager
from kubemirror.cache.store import ResourceStore, object_key
from kubemirror.cache.watcher import KindWatcher

__all__ = ["KindWatcher", "ResourceStore", "WatchFanoutManager", "object_key"]
