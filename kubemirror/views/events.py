"""Core Event projection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kubemirror.access.reader import ReadPath


async def list_events(
    reader: ReadPath,
    namespace: str = "",
    label_selector: str = "",
    timeout: float | None = None,
) -> list[dict[str, Any]]:
    """Return flattened events, from the store unless a selector is given."""
    objects, _ = await reader.list_objects(
        "Event", namespace, label_selector=label_selector, timeout=timeout, operation="list_events"
    )
    return [_project(obj) for obj in objects]


def _project(obj: dict[str, Any]) -> dict[str, Any]:
    metadata = obj.get("metadata") or {}
    return {
        "name": metadata.get("name", ""),
        "namespace": metadata.get("namespace", ""),
        "reason": obj.get("reason", ""),
        "message": obj.get("message", ""),
        "source": (obj.get("source") or {}).get("component", ""),
        "type": obj.get("type", ""),
        "count": obj.get("count") or 0,
        "first_time": obj.get("firstTimestamp") or "",
        "last_time": obj.get("lastTimestamp") or "",
    }
