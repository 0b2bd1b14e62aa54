"""Watch connection: one live subscription to one resource collection.

The connection is the publisher side of an observer interface.  Observers
receive the lifecycle signals (connect, disconnect, reconnect, error) and the
classified notification stream, in server order, one notification at a time.

State machine::

    idle -> connected -> (disconnected -> reconnecting -> connected)* -> disconnected

Only transport outcomes and the reconnection policy drive transitions;
callers can only ``start()`` and ``stop()``.

Idle timeout: with ``idle_timeout <= 0`` (the default) a stream that stays
silent is treated as alive.  A positive value turns a silent window of that
many seconds into a disconnect with ``WatchIdleTimeoutError``, which goes
through the reconnection policy like any other transport error.

Attempt counting: the reconnect attempt number starts over only after a
session that delivered notifications and stayed connected for at least
``healthy_after`` seconds, so a server that fails right after each event
still exhausts a bounded retry budget.

Resume point: a stream exposing ``resource_version`` decides where the next
session resumes; otherwise the version of the last delivered resource is
used.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any

import structlog

from gardenwatch.models.collections import ResourceCollection
from gardenwatch.models.events import Classification, ConnectionState, Valid
from gardenwatch.observability.logging import bind_watch_context
from gardenwatch.watches.classifier import classify
from gardenwatch.watches.policy import ReconnectionPolicy
from gardenwatch.watches.transport import WatchTransport

_log = structlog.get_logger(component="watches.connection")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class WatchError(Exception):
    """Base class for watch connection errors."""


class WatchClosedError(WatchError):
    """Raised by start() after the connection has been stopped."""


class WatchAlreadyRunningError(WatchError):
    """Raised by start() while a session is still live."""


class WatchIdleTimeoutError(WatchError):
    """No notification arrived within the idle window."""


class MalformedNotificationError(WatchError):
    """The transport produced something that is not a notification."""


class WatchRetriesExhaustedError(WatchError):
    """The reconnection policy declined to retry after an error."""

    def __init__(self, collection: ResourceCollection, attempts: int, cause: BaseException) -> None:
        super().__init__(f"watch {collection.name} gave up after {attempts} attempt(s): {cause}")
        self.collection = collection
        self.attempts = attempts
        self.cause = cause


# ---------------------------------------------------------------------------
# Observer interface
# ---------------------------------------------------------------------------


class WatchObserver(ABC):
    """Subscriber to a WatchConnection's signals and notifications."""

    @abstractmethod
    def on_connect(self, connection: WatchConnection) -> None: ...

    @abstractmethod
    def on_disconnect(self, connection: WatchConnection, error: BaseException | None) -> None: ...

    @abstractmethod
    def on_reconnect(self, connection: WatchConnection, attempt: int, delay_ms: int) -> None: ...

    @abstractmethod
    def on_error(self, connection: WatchConnection, error: BaseException) -> None: ...

    @abstractmethod
    def on_notification(self, connection: WatchConnection, result: Classification) -> None:
        """Called once per notification, before the next one is read."""


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class WatchConnection:
    """Owns one subscription to one collection and its transport resources."""

    def __init__(
        self,
        collection: ResourceCollection,
        transport: WatchTransport,
        policy: ReconnectionPolicy,
        *,
        namespace: str | None = None,
        idle_timeout: float = 0.0,
        healthy_after: float = 10.0,
    ) -> None:
        self._collection = collection
        self._transport = transport
        self._policy = policy
        self._namespace = namespace if collection.namespaced and namespace else None
        self._idle_timeout = idle_timeout
        self._healthy_after = healthy_after
        self._observers: list[WatchObserver] = []
        self._state = ConnectionState.IDLE
        self._resource_version = ""
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def collection(self) -> ResourceCollection:
        return self._collection

    @property
    def namespace(self) -> str | None:
        return self._namespace

    def subscribe(self, observer: WatchObserver) -> None:
        self._observers.append(observer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start a watch session in a background task."""
        if self._closed:
            raise WatchClosedError(f"watch {self._collection.name} has been stopped")
        if self._task is not None and not self._task.done():
            raise WatchAlreadyRunningError(f"watch {self._collection.name} is already running")
        self._resource_version = ""
        self._task = asyncio.create_task(self._run(), name=f"watch-{self._collection.name}")

    async def stop(self) -> None:
        """Stop the session and reject any further start().

        Cancels the stream and any pending reconnect, then emits a final
        disconnect without an error if a session was live.
        """
        if self._closed:
            return
        self._closed = True
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self._set_state(ConnectionState.DISCONNECTED)
        self._emit_disconnect(None)

    async def wait(self) -> None:
        """Wait for the current session to end.

        Re-raises an exception that escaped a consumer.
        """
        if self._task is not None:
            await self._task

    # ------------------------------------------------------------------
    # Session loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        bind_watch_context(self._collection.name, self._namespace)
        try:
            await self._watch_loop()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # A consumer failure ends the session; observers still see it go down.
            self._set_state(ConnectionState.DISCONNECTED)
            self._emit_disconnect(exc)
            raise
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def _watch_loop(self) -> None:
        attempt = 0
        while True:
            error: BaseException | None = None
            received = 0
            connected_for = 0.0
            try:
                stream = await self._transport.open(
                    self._collection,
                    namespace=self._namespace,
                    resource_version=self._resource_version,
                )
            except Exception as exc:
                error = exc
            else:
                self._set_state(ConnectionState.CONNECTED)
                self._emit_connect()
                connected_at = asyncio.get_running_loop().time()
                try:
                    error, received = await self._consume(stream)
                finally:
                    await _close_stream(stream)
                connected_for = asyncio.get_running_loop().time() - connected_at

            self._set_state(ConnectionState.DISCONNECTED)
            self._emit_disconnect(error)
            if error is None:
                return

            if received and connected_for >= self._healthy_after:
                attempt = 0
            attempt += 1
            decision = self._policy.decide(error, attempt)
            if not decision.retry:
                self._emit_error(WatchRetriesExhaustedError(self._collection, attempt, error))
                return

            self._set_state(ConnectionState.RECONNECTING)
            self._emit_reconnect(attempt, decision.delay_ms)
            await asyncio.sleep(decision.delay_ms / 1000)

    async def _consume(self, stream: AsyncIterator[Any]) -> tuple[BaseException | None, int]:
        """Deliver notifications until the stream ends or fails.

        Transport failures are returned; exceptions raised while delivering
        propagate to the caller.
        """
        received = 0
        tracked = isinstance(getattr(stream, "resource_version", None), str)
        try:
            while True:
                try:
                    raw = await self._next(stream)
                except StopAsyncIteration:
                    return None, received
                except Exception as exc:
                    return exc, received
                received += 1
                if not isinstance(raw, Mapping):
                    self._emit_error(MalformedNotificationError(f"expected a mapping, got {type(raw).__name__}"))
                    continue
                self._deliver(classify(raw), track_resource=not tracked)
        finally:
            if tracked:
                self._resource_version = stream.resource_version  # type: ignore[attr-defined]

    async def _next(self, stream: AsyncIterator[Any]) -> Any:
        if self._idle_timeout <= 0:
            return await anext(stream)
        try:
            return await asyncio.wait_for(anext(stream), timeout=self._idle_timeout)
        except TimeoutError as exc:
            raise WatchIdleTimeoutError(
                f"no notification on watch {self._collection.name} for {self._idle_timeout}s"
            ) from exc

    def _deliver(self, result: Classification, track_resource: bool = True) -> None:
        if track_resource and isinstance(result, Valid) and result.event.resource is not None:
            rv = result.event.resource.resource_version
            if rv:
                self._resource_version = rv
        for observer in self._observers:
            observer.on_notification(self, result)

    # ------------------------------------------------------------------
    # Signal emission
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            _log.debug(
                "watch_state_changed",
                collection=self._collection.name,
                previous=self._state.value,
                state=state.value,
            )
            self._state = state

    def _emit_connect(self) -> None:
        for observer in self._observers:
            observer.on_connect(self)

    def _emit_disconnect(self, error: BaseException | None) -> None:
        for observer in self._observers:
            observer.on_disconnect(self, error)

    def _emit_reconnect(self, attempt: int, delay_ms: int) -> None:
        for observer in self._observers:
            observer.on_reconnect(self, attempt, delay_ms)

    def _emit_error(self, error: BaseException) -> None:
        for observer in self._observers:
            observer.on_error(self, error)


async def _close_stream(stream: AsyncIterator[Any]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as exc:
        _log.debug("watch_stream_close_failed", error=str(exc))
