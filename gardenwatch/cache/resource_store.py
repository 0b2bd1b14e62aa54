"""In-memory resource store fed by watch consumers.

Each watched collection gets its own table keyed by ``(namespace, name)``;
cluster-scoped resources use ``""`` as namespace.  ADDED and MODIFIED upsert,
DELETED removes.  ERROR events never reach a consumer and are rejected here.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial

import structlog

from gardenwatch.models.collections import ResourceCollection
from gardenwatch.models.events import EventKind, ResourceEvent, ResourceSnapshot

_log = structlog.get_logger(component="cache.resource_store")


class ResourceStore:
    """Current state of every watched collection."""

    def __init__(self) -> None:
        # collection -> (namespace, name) -> snapshot
        self._store: dict[str, dict[tuple[str, str], ResourceSnapshot]] = {}
        self._last_rv: dict[str, str] = {}

    def register(self, collection: ResourceCollection | str) -> None:
        """Create an empty table so the collection is known before its first event."""
        self._store.setdefault(str(collection), {})

    def consumer_for(self, collection: ResourceCollection | str) -> Callable[[ResourceEvent], None]:
        """Return a consumer callback that applies events to *collection*."""
        self.register(collection)
        return partial(self.apply, str(collection))

    def apply(self, collection: str, event: ResourceEvent) -> None:
        if event.kind == EventKind.ERROR or event.resource is None:
            raise ValueError("ERROR events cannot be applied to the store")
        resource = event.resource
        table = self._store.setdefault(collection, {})
        key = (resource.namespace or "", resource.name)
        if event.kind == EventKind.DELETED:
            table.pop(key, None)
        else:
            table[key] = resource
        if resource.resource_version:
            self._last_rv[collection] = resource.resource_version
        _log.debug(
            "store_updated",
            collection=collection,
            kind=event.kind.value,
            namespace=key[0],
            name=key[1],
            size=len(table),
        )

    def get(self, collection: str, name: str, namespace: str | None = None) -> ResourceSnapshot | None:
        return self._store.get(collection, {}).get((namespace or "", name))

    def list_resources(self, collection: str, namespace: str | None = None) -> list[ResourceSnapshot]:
        """Snapshots of *collection*, sorted by namespace then name."""
        table = self._store.get(collection, {})
        keys = sorted(k for k in table if namespace is None or k[0] == namespace)
        return [table[k] for k in keys]

    def count(self, collection: str) -> int:
        return len(self._store.get(collection, {}))

    def collections(self) -> list[str]:
        return sorted(self._store)

    def has_collection(self, collection: str) -> bool:
        return collection in self._store

    def last_resource_version(self, collection: str) -> str:
        return self._last_rv.get(collection, "")
