"""Resource coordinate and read-result data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Schema-less object as returned by the API server (camelCase keys kept).
KubeObject = dict[str, Any]


class WatchEventType(StrEnum):
    """Event types delivered on a watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class ReadSource(StrEnum):
    """Where a read was answered from."""

    CACHE = "cache"
    LIVE = "live"


@dataclass(frozen=True)
class Coordinate:
    """API coordinate of a kind: group, version and plural resource name.

    Immutable once resolved; shared read-only by every component.
    """

    group: str
    version: str
    plural: str
    kind: str = ""
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        """Return ``v1`` for the core group, ``group/version`` otherwise."""
        return f"{self.group}/{self.version}" if self.group else self.version


@dataclass(frozen=True)
class APIResourceType:
    """One entry of server-preferred discovery."""

    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool
    verbs: tuple[str, ...] = ()
    singular: str = ""

    def supports(self, *verbs: str) -> bool:
        """Return True when every verb in ``verbs`` is declared."""
        return all(verb in self.verbs for verb in verbs)

    def coordinate(self) -> Coordinate:
        return Coordinate(
            group=self.group,
            version=self.version,
            plural=self.plural,
            kind=self.kind,
            namespaced=self.namespaced,
        )


@dataclass(frozen=True)
class ResourceSummary:
    """Lightweight projection used by list results."""

    name: str
    kind: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: KubeObject, kind: str = "") -> ResourceSummary:
        metadata = obj.get("metadata") or {}
        labels_raw = metadata.get("labels") or {}
        return cls(
            name=str(metadata.get("name", "")),
            kind=str(obj.get("kind") or kind),
            namespace=str(metadata.get("namespace") or ""),
            labels={str(k): str(v) for k, v in labels_raw.items()} if isinstance(labels_raw, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "namespace": self.namespace,
            "labels": dict(self.labels),
        }


@dataclass
class ListResult:
    """Result of a list call.

    ``items`` has no guaranteed order. ``served_from_cache`` is True when the
    local store answered without contacting the API server.
    """

    items: list[ResourceSummary] = field(default_factory=list)
    served_from_cache: bool = False


@dataclass(frozen=True)
class StoreStatus:
    """Point-in-time state of one kind's mirror."""

    kind: str
    synced: bool
    failed: bool
    objects: int
    resource_version: str = ""
    failure_reason: str = ""
