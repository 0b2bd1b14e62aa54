"""Shared fixtures for gardenwatch tests.

Provides a scripted in-memory transport and a recording observer so that
watch connections can be exercised without a cluster, plus a fake
kubernetes-asyncio Watch for driving the real KubernetesWatchTransport.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gardenwatch.models.collections import ResourceCollection
from gardenwatch.models.events import Classification
from gardenwatch.watches.connection import WatchConnection, WatchObserver
from gardenwatch.watches.transport import KubernetesWatchTransport, WatchTransport

# Placed in a session script, blocks the stream until the task is cancelled.
HANG = object()


class FakeTransport(WatchTransport):
    """Replays scripted sessions.

    Each session is either an exception (``open`` fails) or a list of items
    yielded in order; an exception inside the list is raised mid-stream and
    ``HANG`` blocks forever.  Once the script runs out every ``open`` returns
    a stream that blocks forever.
    """

    def __init__(self, sessions: list[Any] | None = None) -> None:
        self._sessions = list(sessions or [])
        self.opened: list[tuple[ResourceCollection, str | None, str]] = []
        self.closed = 0

    async def open(
        self,
        collection: ResourceCollection,
        *,
        namespace: str | None = None,
        resource_version: str = "",
    ) -> AsyncIterator[Any]:
        self.opened.append((collection, namespace, resource_version))
        script = self._sessions.pop(0) if self._sessions else [HANG]
        if isinstance(script, BaseException):
            raise script
        return self._iterate(script)

    async def _iterate(self, script: list[Any]) -> AsyncIterator[Any]:
        try:
            for item in script:
                if isinstance(item, BaseException):
                    raise item
                if item is HANG:
                    await asyncio.Event().wait()
                yield item
        finally:
            self.closed += 1


class RecordingObserver(WatchObserver):
    """Records every signal and classification in arrival order."""

    def __init__(self) -> None:
        self.signals: list[tuple[Any, ...]] = []
        self.results: list[Classification] = []

    def on_connect(self, connection: WatchConnection) -> None:
        self.signals.append(("connect",))

    def on_disconnect(self, connection: WatchConnection, error: BaseException | None) -> None:
        self.signals.append(("disconnect", error))

    def on_reconnect(self, connection: WatchConnection, attempt: int, delay_ms: int) -> None:
        self.signals.append(("reconnect", attempt, delay_ms))

    def on_error(self, connection: WatchConnection, error: BaseException) -> None:
        self.signals.append(("error", error))

    def on_notification(self, connection: WatchConnection, result: Classification) -> None:
        self.results.append(result)

    def names(self) -> list[str]:
        return [s[0] for s in self.signals]


def notification(event_type: str, name: str = "my-shoot", namespace: str = "garden-dev", rv: str = "1") -> dict:
    """Build a raw watch notification for a shoot."""
    return {
        "type": event_type,
        "object": {
            "apiVersion": "garden.sapcloud.io/v1beta1",
            "kind": "Shoot",
            "metadata": {"name": name, "namespace": namespace, "resourceVersion": rv, "uid": f"uid-{name}"},
            "spec": {"cloud": {"profile": "aws"}},
        },
    }


def status_notification(code: int = 410, reason: str = "Expired", message: str = "too old resource version") -> dict:
    return {"type": "ERROR", "object": {"kind": "Status", "code": code, "reason": reason, "message": message}}


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds or fail after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def shoots() -> ResourceCollection:
    return ResourceCollection(name="shoots", namespaced=True)


@pytest.fixture
def projects() -> ResourceCollection:
    return ResourceCollection(name="projects", namespaced=False)


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def make_notification() -> Callable[..., dict]:
    return notification


@pytest.fixture
def make_status() -> Callable[..., dict]:
    return status_notification


@pytest.fixture
def hang() -> object:
    return HANG


@pytest.fixture
def until() -> Callable[..., Any]:
    return wait_until


class FakeWatch:
    """Stand-in for kubernetes_asyncio.watch.Watch.

    Yields the scripted events, then raises *exc* if given, or blocks
    forever when *hang* is set.
    """

    def __init__(
        self,
        events: list[dict[str, Any]] | None = None,
        exc: Exception | None = None,
        hang: bool = False,
    ) -> None:
        self._events = events or []
        self._exc = exc
        self._hang = hang
        self.calls: list[tuple[Any, tuple[Any, ...], dict[str, Any]]] = []
        self.close = AsyncMock()

    def stream(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        self.calls.append((func, args, kwargs))
        return self._gen()

    async def _gen(self) -> Any:
        for event in self._events:
            yield event
        if self._exc is not None:
            raise self._exc
        if self._hang:
            await asyncio.Event().wait()


def k8s_object(name: str, rv: str, namespace: str = "garden-dev") -> dict[str, Any]:
    return {"metadata": {"name": name, "namespace": namespace, "resourceVersion": rv}}


def k8s_list(*items: dict[str, Any], rv: str) -> dict[str, Any]:
    return {"items": list(items), "metadata": {"resourceVersion": rv}}


def watch_event(event_type: str, raw: dict[str, Any]) -> dict[str, Any]:
    return {"type": event_type, "object": raw, "raw_object": raw}


def k8s_api(*list_results: Any) -> MagicMock:
    """CustomObjectsApi mock whose list calls return *list_results* in order."""
    api = MagicMock()
    api.list_cluster_custom_object = AsyncMock(side_effect=list(list_results))
    api.list_namespaced_custom_object = AsyncMock(side_effect=list(list_results))
    return api


def kubernetes_transport(api: MagicMock, **kwargs: Any) -> KubernetesWatchTransport:
    kwargs.setdefault("timeout_seconds", 60)
    with patch("gardenwatch.watches.transport.client.CustomObjectsApi", return_value=api):
        return KubernetesWatchTransport(group="garden.sapcloud.io", version="v1beta1", **kwargs)


@pytest.fixture
def make_watch() -> Callable[..., FakeWatch]:
    return FakeWatch


@pytest.fixture
def k8s() -> SimpleNamespace:
    """Builders for driving KubernetesWatchTransport against a mocked API."""
    return SimpleNamespace(
        obj=k8s_object,
        list=k8s_list,
        event=watch_event,
        api=k8s_api,
        transport=kubernetes_transport,
    )
