"""Shared fixtures for gardenwatch integration tests.

Wires a scripted transport, a WatchConnection, a Dispatcher and a
ResourceStore together so the whole watch pipeline runs without a cluster.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pytest

from gardenwatch.cache.resource_store import ResourceStore
from gardenwatch.models.collections import CollectionRegistry
from gardenwatch.watches import Dispatcher, ReconnectionPolicy, WatchConnection, register
from gardenwatch.watches.transport import WatchTransport


@dataclass
class Pipeline:
    connection: WatchConnection
    dispatcher: Dispatcher
    store: ResourceStore
    transport: Any


@pytest.fixture
def build_pipeline(make_transport) -> Callable[..., Pipeline]:
    """Return a factory: ``build_pipeline(sessions, collection="shoots", **connection_kwargs)``.

    *sessions* may also be a ready transport, such as a KubernetesWatchTransport
    over a mocked API.
    """

    def _build(sessions: Any, collection: str = "shoots", **kwargs: Any) -> Pipeline:
        registry = CollectionRegistry()
        identity = registry.identity(collection)
        store = ResourceStore()
        transport = sessions if isinstance(sessions, WatchTransport) else make_transport(sessions)
        policy = kwargs.pop("policy", None) or ReconnectionPolicy(base_delay_ms=1, max_delay_ms=4)
        connection = WatchConnection(identity, transport, policy, **kwargs)
        dispatcher = register(connection, store.consumer_for(identity))
        return Pipeline(connection=connection, dispatcher=dispatcher, store=store, transport=transport)

    return _build
