"""Prometheus metrics for kubedelta.

All metrics live in the default registry so the API can expose them with
``prometheus_client.generate_latest()``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

deltas_applied_total = Counter(
    "kubedelta_deltas_applied_total",
    "Deltas that changed the cache",
    ["kind", "type"],
)

deltas_dropped_total = Counter(
    "kubedelta_deltas_dropped_total",
    "Deltas dropped before reaching the cache index",
    ["kind", "reason"],
)

events_suppressed_total = Counter(
    "kubedelta_events_suppressed_total",
    "Modified events suppressed because only volatile fields changed",
    ["kind"],
)

events_dispatched_total = Counter(
    "kubedelta_events_dispatched_total",
    "Classified events handed to the dispatcher",
    ["kind", "verb"],
)

handler_errors_total = Counter(
    "kubedelta_handler_errors_total",
    "Exceptions raised by event handlers",
    ["kind", "handler"],
)

dispatch_queue_dropped_total = Counter(
    "kubedelta_dispatch_queue_dropped_total",
    "Events dropped from a full dispatch queue (oldest first)",
    ["kind"],
)

resyncs_total = Counter(
    "kubedelta_resyncs_total",
    "Full re-lists performed",
    ["kind", "trigger"],
)

watch_failures_total = Counter(
    "kubedelta_watch_failures_total",
    "Watch or list calls that failed with SourceUnavailable",
    ["kind"],
)

cached_objects = Gauge(
    "kubedelta_cached_objects",
    "Objects currently held in the cache",
    ["kind"],
)

cache_synced = Gauge(
    "kubedelta_cache_synced",
    "1 when the cache for a kind is synced, 0 otherwise",
    ["kind"],
)
