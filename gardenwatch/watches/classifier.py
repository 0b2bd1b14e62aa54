"""Classification of raw watch notifications.

``classify`` turns one raw notification ``{"type": ..., "object": ...}`` into
a tagged result so that nothing downstream inspects untyped payloads:

* ``Valid(event)``      -- a well-formed ADDED/MODIFIED/DELETED/ERROR event.
* ``Dropped(type)``     -- a notification type outside the known set.
* ``Malformed(reason)`` -- a known type whose payload failed validation.

The function is pure: it neither logs nor keeps state, and the snapshot it
builds owns a deep copy of the payload.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from gardenwatch.models.events import (
    Classification,
    Dropped,
    EventKind,
    Malformed,
    ResourceEvent,
    ResourceSnapshot,
    StatusError,
    Valid,
)

_KINDS: frozenset[str] = frozenset(kind.value for kind in EventKind)


def classify(notification: Mapping[str, Any]) -> Classification:
    """Classify a single raw watch notification."""
    event_type = notification.get("type")
    if not isinstance(event_type, str) or event_type not in _KINDS:
        return Dropped(event_type=event_type)

    kind = EventKind(event_type)
    obj = notification.get("object")
    if not isinstance(obj, Mapping):
        return Malformed(reason="object is not a mapping", event_type=event_type)

    if kind is EventKind.ERROR:
        return Valid(ResourceEvent(kind=kind, status=_status_from_object(obj)))

    metadata = obj.get("metadata")
    if not isinstance(metadata, Mapping):
        return Malformed(reason="metadata is missing", event_type=event_type)
    name = metadata.get("name")
    if not isinstance(name, str) or not name:
        return Malformed(reason="metadata.name is missing", event_type=event_type)

    return Valid(ResourceEvent(kind=kind, resource=_snapshot_from_object(name, metadata, obj)))


def _snapshot_from_object(name: str, metadata: Mapping[str, Any], obj: Mapping[str, Any]) -> ResourceSnapshot:
    namespace = metadata.get("namespace")
    labels = metadata.get("labels")
    return ResourceSnapshot(
        name=name,
        namespace=str(namespace) if namespace else None,
        resource_version=str(metadata.get("resourceVersion") or ""),
        uid=str(metadata.get("uid") or ""),
        labels={str(k): str(v) for k, v in labels.items()} if isinstance(labels, Mapping) else {},
        raw=copy.deepcopy(dict(obj)),
    )


def _status_from_object(obj: Mapping[str, Any]) -> StatusError:
    return StatusError(
        code=_coerce_code(obj.get("code")),
        reason=str(obj.get("reason") or ""),
        message=str(obj.get("message") or ""),
    )


def _coerce_code(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None
