"""Ingress routing flattened to host/path -> service/port entries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kubemirror.models.resources import KubeObject

if TYPE_CHECKING:
    from kubemirror.access.reader import ReadPath


async def list_ingresses(
    reader: ReadPath,
    host: str = "",
    namespace: str = "",
    timeout: float | None = None,
) -> list[dict[str, Any]]:
    """Return ``{name, namespace, paths}`` for each ingress matching ``host``.

    An ingress without rules matches every host.  With a host filter, an
    ingress none of whose rules carry that host is left out.
    """
    objects, _ = await reader.list_objects("Ingress", namespace, timeout=timeout, operation="list_ingresses")
    result = []
    for obj in objects:
        matched, paths = flatten_ingress(obj, host)
        if matched:
            metadata = obj.get("metadata") or {}
            result.append(
                {
                    "name": metadata.get("name", ""),
                    "namespace": metadata.get("namespace", ""),
                    "paths": paths,
                }
            )
    return result


def flatten_ingress(obj: KubeObject, host: str = "") -> tuple[bool, list[dict[str, Any]]]:
    """Return (matches host, backend entries of the matching rules)."""
    rules = (obj.get("spec") or {}).get("rules") or []
    if not rules:
        return True, []

    matched = False
    paths: list[dict[str, Any]] = []
    for rule in rules:
        rule_host = rule.get("host", "")
        if host and rule_host != host:
            continue
        matched = True
        for entry in (rule.get("http") or {}).get("paths") or []:
            service = (entry.get("backend") or {}).get("service")
            # Resource backends have no service to report.
            if not service:
                continue
            port = service.get("port") or {}
            paths.append(
                {
                    "host": rule_host,
                    "path": entry.get("path", ""),
                    "service_name": service.get("name", ""),
                    "port_name": port.get("name", ""),
                    "port_number": int(port.get("number") or 0),
                }
            )
    return matched, paths
