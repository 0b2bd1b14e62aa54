"""Watch pipeline for gardenwatch.

Keeps long-lived watch subscriptions against the cluster API and turns their
notifications into validated events for a registered consumer.

Submodules
----------
classifier -- classify(): raw notification -> Valid | Dropped | Malformed.
policy     -- ReconnectionPolicy: exponential back-off, bounded attempts.
transport  -- WatchTransport interface, KubernetesWatchTransport.
connection -- WatchConnection: session lifecycle, reconnects, observers.
dispatcher -- Dispatcher / register(): logging, metrics, consumer delivery.
"""

from gardenwatch.watches.classifier import classify
from gardenwatch.watches.connection import (
    MalformedNotificationError,
    WatchAlreadyRunningError,
    WatchClosedError,
    WatchConnection,
    WatchError,
    WatchIdleTimeoutError,
    WatchObserver,
    WatchRetriesExhaustedError,
)
from gardenwatch.watches.dispatcher import Dispatcher, DispatcherStats, register
from gardenwatch.watches.policy import ReconnectDecision, ReconnectionPolicy
from gardenwatch.watches.transport import KubernetesWatchTransport, WatchTransport

__all__ = [
    "Dispatcher",
    "DispatcherStats",
    "KubernetesWatchTransport",
    "MalformedNotificationError",
    "ReconnectDecision",
    "ReconnectionPolicy",
    "WatchAlreadyRunningError",
    "WatchClosedError",
    "WatchConnection",
    "WatchError",
    "WatchIdleTimeoutError",
    "WatchObserver",
    "WatchRetriesExhaustedError",
    "WatchTransport",
    "classify",
    "register",
]
