"""Dispatcher: binds a consumer callback to a watch connection.

The dispatcher observes every lifecycle signal for logging and metrics and
forwards only valid, non-ERROR events to the consumer.  It never retries,
reorders or buffers, and it does not guard the consumer: an exception raised
by the consumer propagates into the connection's session task.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass

import structlog

from gardenwatch.models.events import (
    Classification,
    ConnectionState,
    Dropped,
    EventKind,
    Malformed,
    ResourceEvent,
    Valid,
)
from gardenwatch.observability.metrics import (
    watch_connected,
    watch_notifications_total,
    watch_signals_total,
)
from gardenwatch.watches.connection import WatchConnection, WatchObserver

_log = structlog.get_logger(component="watches.dispatcher")

Consumer = Callable[[ResourceEvent], None]


@dataclass
class DispatcherStats:
    """Counters kept by a dispatcher for one connection."""

    connects: int = 0
    disconnects: int = 0
    reconnects: int = 0
    errors: int = 0
    delivered: int = 0
    status_errors: int = 0
    dropped: int = 0
    malformed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class Dispatcher(WatchObserver):
    """Forwards classified notifications of one connection to a consumer."""

    def __init__(self, consumer: Consumer) -> None:
        self._consumer = consumer
        self.stats = DispatcherStats()
        # State as observed through signals, never read from the connection.
        self.observed_state = ConnectionState.IDLE

    def on_connect(self, connection: WatchConnection) -> None:
        self.stats.connects += 1
        self.observed_state = ConnectionState.CONNECTED
        _signal(connection, "connect")
        watch_connected.labels(collection=connection.collection.name).set(1)
        _log.info(
            "watch_connected",
            collection=connection.collection.name,
            namespace=connection.namespace or "",
        )

    def on_disconnect(self, connection: WatchConnection, error: BaseException | None) -> None:
        self.stats.disconnects += 1
        self.observed_state = ConnectionState.DISCONNECTED
        _signal(connection, "disconnect")
        watch_connected.labels(collection=connection.collection.name).set(0)
        if error is None:
            _log.info("watch_disconnected", collection=connection.collection.name)
        else:
            _log.error(
                "watch_disconnected",
                collection=connection.collection.name,
                error=str(error),
                error_type=type(error).__name__,
            )

    def on_reconnect(self, connection: WatchConnection, attempt: int, delay_ms: int) -> None:
        self.stats.reconnects += 1
        self.observed_state = ConnectionState.RECONNECTING
        _signal(connection, "reconnect")
        _log.info(
            "watch_reconnecting",
            collection=connection.collection.name,
            attempt=attempt,
            delay_ms=delay_ms,
        )

    def on_error(self, connection: WatchConnection, error: BaseException) -> None:
        self.stats.errors += 1
        _signal(connection, "error")
        _log.error(
            "watch_error",
            collection=connection.collection.name,
            error=str(error),
            error_type=type(error).__name__,
        )

    def on_notification(self, connection: WatchConnection, result: Classification) -> None:
        collection = connection.collection.name
        if isinstance(result, Dropped):
            self.stats.dropped += 1
            watch_notifications_total.labels(collection=collection, outcome="dropped").inc()
            _log.debug("watch_event_dropped", collection=collection, event_type=str(result.event_type))
            return

        if isinstance(result, Malformed):
            self.stats.malformed += 1
            watch_notifications_total.labels(collection=collection, outcome="malformed").inc()
            _log.error(
                "watch_event_malformed",
                collection=collection,
                event_type=result.event_type,
                reason=result.reason,
            )
            return

        assert isinstance(result, Valid)
        event = result.event
        if event.kind == EventKind.ERROR:
            assert event.status is not None
            self.stats.status_errors += 1
            watch_notifications_total.labels(collection=collection, outcome="status_error").inc()
            _log.error(
                "watch_status_error",
                collection=collection,
                namespaced=connection.collection.namespaced,
                code=event.status.code,
                reason=event.status.reason,
                message=event.status.message,
            )
            return

        assert event.resource is not None
        _log.debug(
            "watch_event",
            collection=collection,
            kind=event.kind.value,
            name=event.resource.name,
            namespace=event.resource.namespace or "",
        )
        self.stats.delivered += 1
        watch_notifications_total.labels(collection=collection, outcome="delivered").inc()
        self._consumer(event)


def register(connection: WatchConnection, consumer: Consumer) -> Dispatcher:
    """Bind *consumer* to *connection* and return the observing dispatcher."""
    dispatcher = Dispatcher(consumer)
    connection.subscribe(dispatcher)
    return dispatcher


def _signal(connection: WatchConnection, signal: str) -> None:
    watch_signals_total.labels(collection=connection.collection.name, signal=signal).inc()
