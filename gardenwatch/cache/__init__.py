"""Cache layer for gardenwatch.

Holds the application state built from delivered watch events.

Submodules:
    resource_store -- In-memory store keyed by collection, namespace and name.
"""

from gardenwatch.cache.resource_store import ResourceStore

__all__ = ["ResourceStore"]
