"""Pydantic response models for the kubemirror status API.

The API reports the health of the mirror itself.  It never returns
resource contents.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from kubemirror.models.resources import StoreStatus


class ErrorResponse(BaseModel):
    """Uniform error envelope."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class StoreStatusModel(BaseModel):
    kind: str
    synced: bool
    failed: bool
    objects: int = Field(ge=0)
    resource_version: str = ""
    failure_reason: str = ""

    @classmethod
    def from_status(cls, status: StoreStatus) -> StoreStatusModel:
        return cls(
            kind=status.kind,
            synced=status.synced,
            failed=status.failed,
            objects=status.objects,
            resource_version=status.resource_version,
            failure_reason=status.failure_reason,
        )


class StoresResponse(BaseModel):
    stores: list[StoreStatusModel] = Field(default_factory=list)
    eligible_kinds: list[str] = Field(default_factory=list)


class ReadinessResponse(BaseModel):
    """Readiness of the watch fan-out.

    Ready once fan-out has started and every started store is either
    synchronized or has permanently failed (failed kinds are served live).
    """

    ready: bool
    synced: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
