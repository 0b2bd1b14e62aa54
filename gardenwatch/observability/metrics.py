"""Prometheus metrics for the watch pipeline.

All collectors are registered on the default registry and exposed by the
status API under ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

watch_signals_total = Counter(
    "gardenwatch_watch_signals_total",
    "Lifecycle signals emitted by watch connections",
    ["collection", "signal"],
)

watch_notifications_total = Counter(
    "gardenwatch_watch_notifications_total",
    "Watch notifications by classification outcome",
    ["collection", "outcome"],
)

watch_connected = Gauge(
    "gardenwatch_watch_connected",
    "1 while the watch connection for a collection is connected",
    ["collection"],
)
