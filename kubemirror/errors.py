"""Typed error conditions for the resource access layer.

Every error carries the kind, name, namespace and operation it relates to
so callers can diagnose a failure without a second round trip.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]


class AccessError(Exception):
    """Base class for all resource access failures."""

    code = "ACCESS_ERROR"

    def __init__(
        self,
        message: str,
        *,
        kind: str = "",
        name: str = "",
        namespace: str = "",
        operation: str = "",
    ) -> None:
        self.message = message
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.operation = operation
        super().__init__(self._render())

    def _render(self) -> str:
        context = [
            f"{label}={value}"
            for label, value in (
                ("operation", self.operation),
                ("kind", self.kind),
                ("namespace", self.namespace),
                ("name", self.name),
            )
            if value
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"

    def annotate(self, **context: str) -> AccessError:
        """Fill in context fields that are still empty and refresh the message.

        The operation is always overwritten with the caller-facing one.
        """
        for attr in ("kind", "name", "namespace"):
            if not getattr(self, attr) and context.get(attr):
                setattr(self, attr, context[attr])
        if context.get("operation"):
            self.operation = context["operation"]
        self.args = (self._render(),)
        return self

    def to_dict(self) -> dict[str, str]:
        """Serialise for JSON error envelopes."""
        return {
            "error": self.code,
            "detail": str(self),
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
            "operation": self.operation,
        }


class KindNotFound(AccessError):
    """Discovery completed without a resource type of the requested kind."""

    code = "KIND_NOT_FOUND"


class DiscoveryUnavailable(AccessError):
    """The discovery call itself failed."""

    code = "DISCOVERY_UNAVAILABLE"


class ResourceNotFound(AccessError):
    """The object does not exist on the API server."""

    code = "RESOURCE_NOT_FOUND"


class InvalidManifest(AccessError):
    """The manifest is malformed or lacks a required field."""

    code = "INVALID_MANIFEST"


class UnsupportedKind(AccessError):
    """The operation does not apply to this kind."""

    code = "UNSUPPORTED_KIND"


class UpstreamError(AccessError):
    """The API server rejected the call for a reason not covered above."""

    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, *, status: int = 0, reason: str = "", **context: str) -> None:
        self.status = status
        self.reason = reason
        super().__init__(message, **context)

    def to_dict(self) -> dict[str, str]:
        payload = super().to_dict()
        payload["status"] = str(self.status)
        return payload


class OperationCancelled(AccessError):
    """The caller's deadline expired before the operation completed."""

    code = "CANCELLED"


def translate_api_error(exc: ApiException, **context: str) -> AccessError:
    """Map an ApiException to the matching typed condition.

    404 becomes ResourceNotFound; every other status is wrapped as
    UpstreamError with the server's status and reason preserved.
    """
    status = int(getattr(exc, "status", 0) or 0)
    reason = str(getattr(exc, "reason", "") or "")
    if status == 404:
        return ResourceNotFound("resource not found", **context)
    return UpstreamError(
        f"api server rejected request: {status} {reason}".rstrip(),
        status=status,
        reason=reason,
        **context,
    )


def is_status(exc: BaseException, *statuses: int) -> bool:
    """Return True if ``exc`` is an ApiException with one of ``statuses``."""
    return isinstance(exc, ApiException) and int(getattr(exc, "status", 0) or 0) in statuses


@asynccontextmanager
async def deadline(timeout: float | None, **context: str) -> AsyncIterator[None]:
    """Bound the enclosed awaits by ``timeout`` seconds.

    Expiry cancels the in-flight request and raises OperationCancelled.
    ``None`` means no deadline. Task cancellation is not converted and
    propagates as asyncio.CancelledError.
    """
    timer = asyncio.timeout(timeout)
    try:
        async with timer:
            yield
    except TimeoutError as exc:
        if not timer.expired():
            raise
        raise OperationCancelled(f"deadline of {timeout}s exceeded", **context) from exc
