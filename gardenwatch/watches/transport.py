"""Transport sources for watch connections.

WatchTransport           -- capability interface a WatchConnection consumes.
KubernetesWatchTransport -- list-then-watch on custom resource collections
                            via kubernetes-asyncio.

A transport's ``open`` establishes the subscription and returns an async
iterator of raw notifications ``{"type": str, "object": dict}``.  Raising
from ``open`` or from the iterator signals a disconnect with an error;
exhausting the iterator signals a clean closure.

A stream may expose a ``resource_version`` attribute: the position a later
``open`` must resume from so that nothing it already yielded is delivered
again.  Streams without it are resumed from the version of the last
delivered resource.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

import structlog
from kubernetes_asyncio import client, watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from gardenwatch.models.collections import ResourceCollection

_log = structlog.get_logger(component="watches.transport")

_HTTP_GONE = 410

RawNotification = Mapping[str, Any]


class WatchTransport(ABC):
    """Source of raw watch notifications for one collection at a time."""

    @abstractmethod
    async def open(
        self,
        collection: ResourceCollection,
        *,
        namespace: str | None = None,
        resource_version: str = "",
    ) -> AsyncIterator[RawNotification]:
        """Subscribe to *collection*.

        When *resource_version* is set the subscription resumes after it;
        otherwise it starts from the current state of the collection.
        """


class KubernetesWatchTransport(WatchTransport):
    """List-then-watch over a custom resource collection.

    * Without a resource version the collection is listed first and each
      item is replayed as a synthetic ADDED notification.
    * Server-side watch timeouts are resumed from the last seen resource
      version; BOOKMARK events only advance that version.
    * HTTP 410 (resource version too old) is surfaced as an ERROR
      notification and followed by a relist.
    * Every list replaces the known contents of the collection: objects
      delivered earlier but missing from the list are replayed as DELETED
      with their last known state before the ADDED items.

    Known contents are kept per collection and namespace for the lifetime
    of the transport, so they survive reconnects.
    """

    def __init__(
        self,
        api_client: Any = None,
        *,
        group: str = "garden.sapcloud.io",
        version: str = "v1beta1",
        timeout_seconds: int = 300,
    ) -> None:
        self._api = client.CustomObjectsApi(api_client)
        self._group = group
        self._version = version
        self._timeout_seconds = timeout_seconds
        self._known: dict[tuple[str, str], dict[tuple[str, str], dict[str, Any]]] = {}

    async def open(
        self,
        collection: ResourceCollection,
        *,
        namespace: str | None = None,
        resource_version: str = "",
    ) -> KubernetesWatchStream:
        known = self._known.setdefault((collection.name, namespace or ""), {})
        if resource_version:
            return KubernetesWatchStream(self, collection, namespace, known, resource_version)
        items, list_rv = await self._list(collection, namespace)
        return KubernetesWatchStream(self, collection, namespace, known, "", (items, list_rv))

    def _list_call(
        self, collection: ResourceCollection, namespace: str | None
    ) -> tuple[Callable[..., Any], tuple[str, ...]]:
        if collection.namespaced and namespace:
            return (
                self._api.list_namespaced_custom_object,
                (self._group, self._version, namespace, collection.name),
            )
        return self._api.list_cluster_custom_object, (self._group, self._version, collection.name)

    async def _list(
        self, collection: ResourceCollection, namespace: str | None
    ) -> tuple[list[dict[str, Any]], str]:
        func, args = self._list_call(collection, namespace)
        result = await func(*args)
        if not isinstance(result, dict):
            result = {}
        items = [item for item in result.get("items") or [] if isinstance(item, dict)]
        list_rv = _extract_rv(result)
        _log.debug(
            "collection_listed",
            collection=collection.name,
            namespace=namespace or "",
            items=len(items),
            resource_version=list_rv,
        )
        return items, list_rv


class KubernetesWatchStream:
    """One subscription opened by KubernetesWatchTransport.

    ``resource_version`` is the point a new subscription must resume from so
    that nothing already yielded is delivered again: the list version once a
    list has been fully replayed, then the version of every watch event and
    bookmark.  It is empty while a relist after 410 is pending, which makes
    a resumed subscription start with a fresh list.
    """

    def __init__(
        self,
        transport: KubernetesWatchTransport,
        collection: ResourceCollection,
        namespace: str | None,
        known: dict[tuple[str, str], dict[str, Any]],
        resource_version: str,
        listed: tuple[list[dict[str, Any]], str] | None = None,
    ) -> None:
        self._transport = transport
        self._collection = collection
        self._namespace = namespace
        self._known = known
        self.resource_version = resource_version
        self._events = self._run(listed)

    def __aiter__(self) -> KubernetesWatchStream:
        return self

    async def __anext__(self) -> RawNotification:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        await self._events.aclose()

    async def _run(self, listed: tuple[list[dict[str, Any]], str] | None) -> AsyncIterator[RawNotification]:
        if listed is not None:
            async for notification in self._replace(*listed):
                yield notification

        transport = self._transport
        while True:
            func, args = transport._list_call(self._collection, self._namespace)
            kwargs: dict[str, Any] = {
                "timeout_seconds": transport._timeout_seconds,
                "allow_watch_bookmarks": True,
            }
            if self.resource_version:
                kwargs["resource_version"] = self.resource_version

            expired = False
            w = watch.Watch()
            try:
                async for event in w.stream(func, *args, **kwargs):
                    event_type = event.get("type")
                    raw = event.get("raw_object")
                    if not isinstance(raw, dict):
                        raw = event.get("object")
                    if event_type == "BOOKMARK":
                        self.resource_version = _extract_rv(raw) or self.resource_version
                        continue
                    if event_type == "ERROR":
                        if isinstance(raw, dict) and raw.get("code") == _HTTP_GONE:
                            expired = True
                            self.resource_version = ""
                            yield {"type": event_type, "object": raw}
                            break
                        yield {"type": event_type, "object": raw}
                        continue
                    self._track(event_type, raw)
                    self.resource_version = _extract_rv(raw) or self.resource_version
                    yield {"type": event_type, "object": raw}
            except ApiException as exc:
                if exc.status != _HTTP_GONE:
                    raise
                expired = True
                self.resource_version = ""
                yield {
                    "type": "ERROR",
                    "object": {
                        "code": _HTTP_GONE,
                        "reason": "Expired",
                        "message": _api_error_message(exc),
                    },
                }
            finally:
                await w.close()

            if expired:
                _log.info("watch_expired_relisting", collection=self._collection.name)
                items, list_rv = await transport._list(self._collection, self._namespace)
                async for notification in self._replace(items, list_rv):
                    yield notification
            else:
                _log.debug(
                    "watch_request_ended",
                    collection=self._collection.name,
                    resource_version=self.resource_version,
                )

    async def _replace(self, items: list[dict[str, Any]], list_rv: str) -> AsyncIterator[RawNotification]:
        """Replay a list as the new contents of the collection."""
        listed = {_object_key(item) for item in items}
        vanished = [key for key in self._known if key not in listed]
        if vanished:
            _log.info("watch_relist_deletions", collection=self._collection.name, deleted=len(vanished))
        for key in vanished:
            yield {"type": "DELETED", "object": self._known.pop(key)}
        for item in items:
            self._track("ADDED", item)
            yield {"type": "ADDED", "object": item}
        self.resource_version = list_rv

    def _track(self, event_type: object, raw: object) -> None:
        if not isinstance(raw, dict):
            return
        key = _object_key(raw)
        if not key[1]:
            return
        if event_type == "DELETED":
            self._known.pop(key, None)
        elif event_type in ("ADDED", "MODIFIED"):
            self._known[key] = raw


def _object_key(raw: dict[str, Any]) -> tuple[str, str]:
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return "", ""
    return str(metadata.get("namespace") or ""), str(metadata.get("name") or "")


def _extract_rv(raw: object) -> str:
    """Return metadata.resourceVersion of a raw object, or ""."""
    if not isinstance(raw, dict):
        return ""
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("resourceVersion") or "")


def _api_error_message(exc: ApiException) -> str:
    body = getattr(exc, "body", None)
    if body:
        try:
            parsed = json.loads(body)
        except (TypeError, ValueError):
            parsed = None
        if isinstance(parsed, dict) and parsed.get("message"):
            return str(parsed["message"])
    return str(exc.reason or "")
