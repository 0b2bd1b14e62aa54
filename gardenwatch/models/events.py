"""Watch event data structures and enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventKind(StrEnum):
    """Kind of a watch notification.

    The set is closed: notifications of any other type never become events.
    """

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


class ConnectionState(StrEnum):
    """Lifecycle state of a watch connection."""

    IDLE = "idle"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ResourceSnapshot:
    """State of one resource as carried by a watch notification."""

    name: str
    namespace: str | None = None
    resource_version: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusError:
    """Server-signaled error carried by an ERROR notification."""

    code: int | None
    reason: str = ""
    message: str = ""


@dataclass(frozen=True)
class ResourceEvent:
    """Normalized watch event delivered downstream.

    Exactly one of ``resource`` and ``status`` is set: ``status`` for
    ``EventKind.ERROR``, ``resource`` for every other kind.
    """

    kind: EventKind
    resource: ResourceSnapshot | None = None
    status: StatusError | None = None

    def __post_init__(self) -> None:
        if self.kind == EventKind.ERROR:
            if self.status is None or self.resource is not None:
                raise ValueError("ERROR events carry a status and no resource")
        elif self.resource is None or self.status is not None:
            raise ValueError(f"{self.kind} events carry a resource and no status")


# ---------------------------------------------------------------------------
# Classification results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Valid:
    """A notification that became a ResourceEvent."""

    event: ResourceEvent


@dataclass(frozen=True)
class Dropped:
    """A notification of an unrecognized type; not an error."""

    event_type: object


@dataclass(frozen=True)
class Malformed:
    """A notification of a known type whose payload failed validation."""

    reason: str
    event_type: str = ""


Classification = Valid | Dropped | Malformed
