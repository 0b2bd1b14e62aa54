"""Read-only routes over watch status and stored resources."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from gardenwatch.api.schemas import (
    ErrorResponse,
    ResourceListResponse,
    ResourceSummary,
    WatchCounters,
    WatchListResponse,
    WatchStatus,
)

router = APIRouter()


@router.get("/watches", response_model=WatchListResponse)
async def list_watches(request: Request) -> WatchListResponse:
    store = request.app.state.store
    statuses = [
        WatchStatus(
            collection=collection.name,
            namespaced=collection.namespaced,
            state=dispatcher.observed_state.value,
            resources=store.count(collection.name),
            counters=WatchCounters(**dispatcher.stats.as_dict()),
        )
        for collection, dispatcher in request.app.state.watches
    ]
    return WatchListResponse(watches=statuses)


@router.get(
    "/collections/{collection}/resources",
    response_model=ResourceListResponse,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse}},
)
async def list_resources(
    collection: str,
    request: Request,
    namespace: str | None = None,
) -> ResourceListResponse | JSONResponse:
    store = request.app.state.store
    if not store.has_collection(collection):
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(
                error="UNKNOWN_COLLECTION",
                detail=f"collection '{collection}' is not watched",
            ).model_dump(),
        )
    items = [
        ResourceSummary(
            name=snapshot.name,
            namespace=snapshot.namespace,
            resource_version=snapshot.resource_version,
            uid=snapshot.uid,
        )
        for snapshot in store.list_resources(collection, namespace)
    ]
    return ResourceListResponse(
        collection=collection,
        resource_version=store.last_resource_version(collection),
        items=items,
    )
