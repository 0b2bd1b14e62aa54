"""Core data structures for gardenwatch."""

from gardenwatch.models.collections import CollectionRegistry, ResourceCollection
from gardenwatch.models.config import GardenWatchConfig
from gardenwatch.models.events import (
    Classification,
    ConnectionState,
    Dropped,
    EventKind,
    Malformed,
    ResourceEvent,
    ResourceSnapshot,
    StatusError,
    Valid,
)

__all__ = [
    "Classification",
    "CollectionRegistry",
    "ConnectionState",
    "Dropped",
    "EventKind",
    "GardenWatchConfig",
    "Malformed",
    "ResourceCollection",
    "ResourceEvent",
    "ResourceSnapshot",
    "StatusError",
    "Valid",
]
