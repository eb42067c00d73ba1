"""Cluster connection built on kubernetes-asyncio.

Wraps one shared ``ApiClient`` and exposes the capabilities the access
layer consumes: server-preferred discovery, generic object access by
coordinate, watch streams, pod logs and metrics-server usage.

Generic calls go through ``ApiClient.call_api`` with ``_preload_content``
disabled so the JSON body is returned untouched as a plain dict; the
generated per-kind models are never involved.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubemirror.errors import DiscoveryUnavailable
from kubemirror.models.resources import APIResourceType, Coordinate, KubeObject
from kubemirror.observability.logging import get_logger

_log = get_logger("cluster.connection")

MERGE_PATCH = "application/merge-patch+json"

_METRICS_GROUP = "metrics.k8s.io"
_METRICS_VERSION = "v1beta1"

# Extra client-side slack on top of the server-side watch timeout.
_WATCH_CLIENT_SLACK_S = 30


def resource_path(coord: Coordinate, namespace: str = "", name: str = "") -> str:
    """Build the REST path for a coordinate.

    Cluster-scoped coordinates ignore ``namespace``. A namespaced coordinate
    with an empty namespace addresses every namespace.
    """
    base = f"/api/{coord.version}" if not coord.group else f"/apis/{coord.group}/{coord.version}"
    if coord.namespaced and namespace:
        base = f"{base}/namespaces/{quote(namespace, safe='')}"
    path = f"{base}/{coord.plural}"
    if name:
        path = f"{path}/{quote(name, safe='')}"
    return path


class ClusterConnection:
    """Async access to one Kubernetes API server.

    Non-2xx responses raise ``ApiException`` with the server's status and
    reason. Transport failures are raised as ``ApiException`` with status 0
    so callers only handle one exception type.
    """

    def __init__(self, api_client: Any, request_timeout: float = 30.0) -> None:
        self._api = api_client
        self._request_timeout = request_timeout

    @classmethod
    async def connect(cls, kubeconfig: str = "", request_timeout: float = 30.0) -> ClusterConnection:
        """Load in-cluster credentials, falling back to a kubeconfig file."""
        try:
            k8s_config.load_incluster_config()
            _log.info("cluster_config_loaded", source="incluster")
        except k8s_config.ConfigException:
            await k8s_config.load_kube_config(config_file=kubeconfig or None)
            _log.info("cluster_config_loaded", source="kubeconfig", path=kubeconfig or "default")
        return cls(k8s_client.ApiClient(), request_timeout=request_timeout)

    async def close(self) -> None:
        """Release the ApiClient connection pool."""
        await self._api.close()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def list_api_resource_types(self) -> list[APIResourceType]:
        """Return server-preferred resource types, core group first.

        Sub-resources are skipped. A group-version whose resource list
        cannot be read is logged and left out; failure of the root
        ``/api`` or ``/apis`` calls raises DiscoveryUnavailable.
        """
        try:
            core = await self._request("GET", "/api")
            groups = await self._request("GET", "/apis")
        except ApiException as exc:
            raise DiscoveryUnavailable(f"discovery failed: {exc.status} {exc.reason}", operation="discovery") from exc

        group_versions: list[tuple[str, str]] = []
        core_versions = core.get("versions") or []
        if core_versions:
            group_versions.append(("", str(core_versions[0])))
        for group in groups.get("groups") or []:
            preferred = group.get("preferredVersion") or {}
            version = preferred.get("version")
            if not version:
                versions = group.get("versions") or []
                version = versions[0].get("version") if versions else None
            if version:
                group_versions.append((str(group.get("name", "")), str(version)))

        results = await asyncio.gather(
            *(self._group_version_resources(group, version) for group, version in group_versions),
            return_exceptions=True,
        )

        resource_types: list[APIResourceType] = []
        for (group, version), result in zip(group_versions, results, strict=True):
            if isinstance(result, ApiException):
                _log.warning(
                    "discovery_group_failed",
                    group=group,
                    version=version,
                    status=result.status,
                    reason=result.reason,
                )
                continue
            if isinstance(result, Exception):
                raise DiscoveryUnavailable(f"discovery failed: {result}", operation="discovery") from result
            if isinstance(result, BaseException):
                raise result
            resource_types.extend(result)
        return resource_types

    async def _group_version_resources(self, group: str, version: str) -> list[APIResourceType]:
        path = f"/api/{version}" if not group else f"/apis/{group}/{version}"
        body = await self._request("GET", path)
        resource_types: list[APIResourceType] = []
        for entry in body.get("resources") or []:
            plural = str(entry.get("name", ""))
            if not plural or "/" in plural:
                continue
            resource_types.append(
                APIResourceType(
                    group=group,
                    version=version,
                    kind=str(entry.get("kind", "")),
                    plural=plural,
                    namespaced=bool(entry.get("namespaced", False)),
                    verbs=tuple(str(v) for v in entry.get("verbs") or []),
                    singular=str(entry.get("singularName", "")),
                )
            )
        return resource_types

    # ------------------------------------------------------------------
    # Generic object access
    # ------------------------------------------------------------------

    async def get(self, coord: Coordinate, name: str, namespace: str = "") -> KubeObject:
        return await self._request("GET", resource_path(coord, namespace, name))

    async def list(
        self,
        coord: Coordinate,
        namespace: str = "",
        label_selector: str = "",
        field_selector: str = "",
        limit: int = 0,
        continue_token: str = "",
    ) -> KubeObject:
        """Return the raw List object (``items`` plus list ``metadata``)."""
        query: list[tuple[str, str]] = []
        if label_selector:
            query.append(("labelSelector", label_selector))
        if field_selector:
            query.append(("fieldSelector", field_selector))
        if limit:
            query.append(("limit", str(limit)))
        if continue_token:
            query.append(("continue", continue_token))
        return await self._request("GET", resource_path(coord, namespace), query=query)

    async def create(self, coord: Coordinate, body: KubeObject, namespace: str = "") -> KubeObject:
        return await self._request("POST", resource_path(coord, namespace), body=body)

    async def patch(
        self,
        coord: Coordinate,
        name: str,
        body: KubeObject,
        namespace: str = "",
        patch_type: str = MERGE_PATCH,
    ) -> KubeObject:
        return await self._request("PATCH", resource_path(coord, namespace, name), body=body, content_type=patch_type)

    async def delete(self, coord: Coordinate, name: str, namespace: str = "") -> KubeObject:
        return await self._request("DELETE", resource_path(coord, namespace, name))

    async def watch(
        self,
        coord: Coordinate,
        resource_version: str = "",
        timeout_seconds: int = 300,
    ) -> AsyncIterator[KubeObject]:
        """Yield decoded watch events (``{"type": ..., "object": {...}}``).

        The stream ends when the server closes it after ``timeout_seconds``.
        """
        query = [
            ("watch", "true"),
            ("allowWatchBookmarks", "true"),
            ("timeoutSeconds", str(timeout_seconds)),
        ]
        if resource_version:
            query.append(("resourceVersion", resource_version))

        response = await self._open(
            "GET",
            resource_path(coord),
            query=query,
            timeout=timeout_seconds + _WATCH_CLIENT_SLACK_S,
        )
        try:
            await _raise_for_status(response)
            buffer = b""
            async for chunk in response.content.iter_any():
                buffer += chunk
                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)
                    if line.strip():
                        yield json.loads(line)
            if buffer.strip():
                yield json.loads(buffer)
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ApiException(status=0, reason=f"watch stream failed: {exc}") from exc
        except ValueError as exc:
            raise ApiException(status=0, reason=f"undecodable watch event: {exc}") from exc
        finally:
            response.release()

    # ------------------------------------------------------------------
    # Typed capabilities
    # ------------------------------------------------------------------

    async def read_pod_log(self, namespace: str, pod: str, container: str = "", tail_lines: int = 100) -> str:
        core_v1 = k8s_client.CoreV1Api(self._api)
        try:
            return await core_v1.read_namespaced_pod_log(
                name=pod,
                namespace=namespace,
                container=container or None,
                tail_lines=tail_lines,
                _request_timeout=self._request_timeout,
            )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ApiException(status=0, reason=f"transport error: {exc}") from exc

    async def pod_usage(self, namespace: str, pod: str) -> KubeObject:
        custom = k8s_client.CustomObjectsApi(self._api)
        try:
            return await custom.get_namespaced_custom_object(
                _METRICS_GROUP, _METRICS_VERSION, namespace, "pods", pod, _request_timeout=self._request_timeout
            )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ApiException(status=0, reason=f"transport error: {exc}") from exc

    async def node_usage(self, node: str) -> KubeObject:
        custom = k8s_client.CustomObjectsApi(self._api)
        try:
            return await custom.get_cluster_custom_object(
                _METRICS_GROUP, _METRICS_VERSION, "nodes", node, _request_timeout=self._request_timeout
            )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ApiException(status=0, reason=f"transport error: {exc}") from exc

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _open(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
        content_type: str = "application/json",
        timeout: float | None = None,
    ) -> aiohttp.ClientResponse:
        headers = {"Accept": "application/json", "Content-Type": content_type}
        try:
            return await self._api.call_api(
                path,
                method,
                query_params=query or [],
                header_params=headers,
                body=body,
                auth_settings=["BearerToken"],
                _return_http_data_only=True,
                _preload_content=False,
                _request_timeout=timeout or self._request_timeout,
            )
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ApiException(status=0, reason=f"transport error: {exc}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
        content_type: str = "application/json",
    ) -> KubeObject:
        response = await self._open(method, path, query=query, body=body, content_type=content_type)
        try:
            await _raise_for_status(response)
            raw = await response.read()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ApiException(status=0, reason=f"transport error: {exc}") from exc
        finally:
            response.release()
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise ApiException(status=0, reason=f"undecodable response body: {exc}") from exc


async def _raise_for_status(response: aiohttp.ClientResponse) -> None:
    if 200 <= response.status <= 299:
        return
    text = await response.text()
    exc = ApiException(status=response.status, reason=_status_reason(text, response.reason))
    exc.body = text
    raise exc


def _status_reason(body: str, fallback: str | None) -> str:
    """Prefer the ``message`` of a Status body over the HTTP reason phrase."""
    try:
        status = json.loads(body)
    except ValueError:
        return fallback or ""
    if isinstance(status, dict) and status.get("message"):
        return str(status["message"])
    return fallback or ""
