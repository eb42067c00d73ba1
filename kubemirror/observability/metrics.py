"""Prometheus metrics for the resource access layer.

All metrics live in the default registry and are served by the REST
surface at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

store_objects = Gauge(
    "kubemirror_store_objects",
    "Objects currently mirrored in the local store for a kind.",
    ["kind"],
)

store_synced = Gauge(
    "kubemirror_store_synced",
    "1 when the kind's store finished its initial list, else 0.",
    ["kind"],
)

read_requests_total = Counter(
    "kubemirror_read_requests_total",
    "Read requests by operation and the source that answered them.",
    ["operation", "source"],
)

watch_restarts_total = Counter(
    "kubemirror_watch_restarts_total",
    "Relist/rewatch cycles triggered by stream failures or 410 Gone.",
    ["kind"],
)

watch_establish_failures_total = Counter(
    "kubemirror_watch_establish_failures_total",
    "Kinds whose watch could not be established and fell back to live reads.",
    ["kind"],
)

coordinate_cache_misses_total = Counter(
    "kubemirror_coordinate_cache_misses_total",
    "Kind resolutions that required a discovery round trip.",
)

upserts_total = Counter(
    "kubemirror_upserts_total",
    "Upsert outcomes by kind.",
    ["kind", "outcome"],
)
