"""Write path: idempotent upsert, delete and rollout restart.

Writes always go to the live API; the local stores are read-only and pick
up the change when the kind's watch delivers it, so an immediate
store-backed read may briefly observe the previous state.

Upsert order is merge-patch first, create on 404.  Re-applying an
unchanged manifest is therefore a no-op patch, at the cost of one failed
patch the first time a name is written.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubemirror.access.manifest import manifest_metadata, parse_manifest
from kubemirror.discovery.resolver import CoordinateResolver
from kubemirror.errors import (
    AccessError,
    InvalidManifest,
    UnsupportedKind,
    deadline,
    is_status,
    translate_api_error,
)
from kubemirror.models.resources import Coordinate, KubeObject
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import upserts_total

_log = get_logger("access.writer")

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"

_NAMESPACE = Coordinate(group="", version="v1", plural="namespaces", kind="Namespace", namespaced=False)


class WritePath:
    """Create-or-update, delete and rollout restart for arbitrary kinds."""

    def __init__(self, connection: Any, resolver: CoordinateResolver) -> None:
        self._connection = connection
        self._resolver = resolver

    async def upsert(
        self,
        kind: str,
        namespace: str,
        manifest: str | Mapping[str, Any],
        timeout: float | None = None,
    ) -> KubeObject:
        """Create the object if absent, else merge-patch it; return the result.

        ``kind`` and ``namespace`` fall back to the manifest's ``kind`` and
        ``metadata.namespace`` when empty.  For namespaced kinds a missing
        namespace is created first.

        Raises:
            InvalidManifest: unparsable manifest, no kind, or no name. Checked
                             before any API call.  A namespaced kind with
                             no namespace is rejected once the kind is
                             resolved, before any write.
        """
        obj = parse_manifest(manifest)
        metadata = manifest_metadata(obj)
        resolved_kind = kind or str(obj.get("kind") or "")
        resolved_namespace = namespace or str(metadata.get("namespace") or "")
        name = str(metadata.get("name") or "")
        context = {"kind": resolved_kind, "name": name, "namespace": resolved_namespace, "operation": "upsert"}

        if not resolved_kind:
            raise InvalidManifest("kind is required, either as a parameter or in the manifest", **context)
        if not name:
            raise InvalidManifest("metadata.name is required", **context)

        async with deadline(timeout, **context):
            coord = await self._resolve(resolved_kind, **context)
            obj.setdefault("kind", coord.kind)
            obj.setdefault("apiVersion", coord.api_version)
            if coord.namespaced:
                if not resolved_namespace:
                    raise InvalidManifest("namespace is required for a namespaced kind", **context)
                metadata["namespace"] = resolved_namespace
                await self.ensure_namespace(resolved_namespace)
            else:
                metadata.pop("namespace", None)
                resolved_namespace = ""

            result, outcome = await self._patch_or_create(coord, name, obj, resolved_namespace, context)

        upserts_total.labels(kind=coord.kind, outcome=outcome).inc()
        _log.info("resource_upserted", kind=coord.kind, namespace=resolved_namespace, name=name, outcome=outcome)
        return result

    async def ensure_namespace(self, namespace: str, timeout: float | None = None) -> bool:
        """Create ``namespace`` if it does not exist. Returns True if created.

        Losing a creation race to another writer counts as already present.
        """
        context = {"kind": "Namespace", "name": namespace, "operation": "ensure_namespace"}
        async with deadline(timeout, **context):
            try:
                await self._connection.get(_NAMESPACE, namespace)
                return False
            except ApiException as exc:
                if not is_status(exc, 404):
                    raise translate_api_error(exc, **context) from exc

            body = {
                "apiVersion": "v1",
                "kind": "Namespace",
                "metadata": {
                    "name": namespace,
                    "labels": {"kubernetes.io/metadata.name": namespace},
                },
            }
            try:
                await self._connection.create(_NAMESPACE, body)
            except ApiException as exc:
                if is_status(exc, 409):
                    return False
                raise translate_api_error(exc, **context) from exc
        _log.info("namespace_created", namespace=namespace)
        return True

    async def delete(self, kind: str, name: str, namespace: str = "", timeout: float | None = None) -> None:
        """Delete one object with the platform's default propagation policy."""
        context = {"kind": kind, "name": name, "namespace": namespace, "operation": "delete"}
        async with deadline(timeout, **context):
            coord = await self._resolve(kind, **context)
            try:
                await self._connection.delete(coord, name, namespace)
            except ApiException as exc:
                raise translate_api_error(exc, **context) from exc
        _log.info("resource_deleted", kind=kind, namespace=namespace, name=name)

    async def rollout_restart(
        self,
        kind: str,
        name: str,
        namespace: str = "",
        timeout: float | None = None,
    ) -> KubeObject:
        """Stamp a restart timestamp on the pod template to roll its pods.

        Raises:
            UnsupportedKind: the patched object has no ``spec.template``.
        """
        context = {"kind": kind, "name": name, "namespace": namespace, "operation": "rollout_restart"}
        restarted_at = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        patch = {"spec": {"template": {"metadata": {"annotations": {RESTARTED_AT_ANNOTATION: restarted_at}}}}}

        async with deadline(timeout, **context):
            coord = await self._resolve(kind, **context)
            try:
                result = await self._connection.patch(coord, name, patch, namespace)
            except ApiException as exc:
                raise translate_api_error(exc, **context) from exc

        spec = result.get("spec")
        if not isinstance(spec, dict) or not isinstance(spec.get("template"), dict):
            raise UnsupportedKind("kind does not carry a pod template", **context)

        _log.info("rollout_restarted", kind=kind, namespace=namespace, name=name, restarted_at=restarted_at)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _patch_or_create(
        self,
        coord: Coordinate,
        name: str,
        obj: KubeObject,
        namespace: str,
        context: dict[str, str],
    ) -> tuple[KubeObject, str]:
        try:
            return await self._connection.patch(coord, name, obj, namespace), "patched"
        except ApiException as exc:
            if not is_status(exc, 404):
                raise translate_api_error(exc, **context) from exc

        try:
            return await self._connection.create(coord, obj, namespace), "created"
        except ApiException as exc:
            if not is_status(exc, 409):
                raise translate_api_error(exc, **context) from exc

        # Another writer created it between our patch and create.
        try:
            return await self._connection.patch(coord, name, obj, namespace), "patched"
        except ApiException as exc:
            raise translate_api_error(exc, **context) from exc

    async def _resolve(self, kind: str, /, **context: str) -> Coordinate:
        try:
            return await self._resolver.resolve(kind)
        except AccessError as exc:
            raise exc.annotate(**context)
