"""Pydantic response models for the kubedelta REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from kubedelta.models.resources import ResourceRecord


class ErrorResponse(BaseModel):
    """Error envelope returned by every non-2xx response."""

    error: str
    detail: str


class ResourceResponse(BaseModel):
    """One cached resource."""

    kind: str
    namespace: str
    name: str
    resource_version: int
    api_version: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    spec: dict[str, Any] = Field(default_factory=dict)
    status: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: ResourceRecord) -> ResourceResponse:
        return cls(
            kind=record.kind.value,
            namespace=record.namespace,
            name=record.name,
            resource_version=record.resource_version,
            api_version=record.api_version,
            metadata=record.metadata,
            spec=record.spec,
            status=record.status,
        )


class ResourceListResponse(BaseModel):
    """All cached resources of one kind."""

    kind: str
    sync_state: str
    revision: int
    items: list[ResourceResponse]


class KindHealth(BaseModel):
    sync_state: str
    objects: int
    revision: int


class HealthResponse(BaseModel):
    """Per-kind sync state. ``status`` is ``ok`` only when every kind is synced."""

    status: str
    version: str
    kinds: dict[str, KindHealth]
