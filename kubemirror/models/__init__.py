"""Core data structures for kubemirror."""

from kubemirror.models.config import KubeMirrorConfig
from kubemirror.models.resources import (
    APIResourceType,
    Coordinate,
    KubeObject,
    ListResult,
    ReadSource,
    ResourceSummary,
    StoreStatus,
    WatchEventType,
)

__all__ = [
    "APIResourceType",
    "Coordinate",
    "KubeMirrorConfig",
    "KubeObject",
    "ListResult",
    "ReadSource",
    "ResourceSummary",
    "StoreStatus",
    "WatchEventType",
]
