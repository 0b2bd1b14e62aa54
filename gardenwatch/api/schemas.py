"""Response schemas for the status API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class WatchCounters(BaseModel):
    connects: int = 0
    disconnects: int = 0
    reconnects: int = 0
    errors: int = 0
    delivered: int = 0
    status_errors: int = 0
    dropped: int = 0
    malformed: int = 0


class WatchStatus(BaseModel):
    collection: str
    namespaced: bool
    state: str
    resources: int
    counters: WatchCounters


class WatchListResponse(BaseModel):
    watches: list[WatchStatus]


class ResourceSummary(BaseModel):
    """Identity fields of a stored resource."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    namespace: str | None = None
    resource_version: str = Field(default="", alias="resourceVersion")
    uid: str = ""


class ResourceListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    collection: str
    resource_version: str = Field(default="", alias="resourceVersion")
    items: list[ResourceSummary]
