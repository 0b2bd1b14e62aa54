"""Resource collection identities and the namespaced-collection registry."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

DEFAULT_NAMESPACED_RESOURCES: frozenset[str] = frozenset({"shoots"})


@dataclass(frozen=True)
class ResourceCollection:
    """Names the collection a watch connection targets.

    Immutable: a connection keeps the same identity for its whole lifetime.
    """

    name: str
    namespaced: bool = False

    def __str__(self) -> str:
        return self.name


class CollectionRegistry:
    """Read-only table of collection names that require namespace scoping.

    Built once from configuration at startup and passed to whoever needs to
    resolve identities; every name not in the table is cluster-scoped.
    """

    def __init__(self, namespaced: Iterable[str] = DEFAULT_NAMESPACED_RESOURCES) -> None:
        names = frozenset(n.strip() for n in namespaced if n and n.strip())
        self._namespaced = names

    @property
    def namespaced(self) -> frozenset[str]:
        return self._namespaced

    def is_namespaced(self, name: str) -> bool:
        return name in self._namespaced

    def identity(self, name: str) -> ResourceCollection:
        """Resolve *name* to its collection identity."""
        if not name:
            raise ValueError("collection name must not be empty")
        return ResourceCollection(name=name, namespaced=self.is_namespaced(name))
