"""
Prometheus metrics for persistq queues.

Registered in the global REGISTRY on import; expose them with
``prometheus_client.start_http_server`` in the host application.
"""

from prometheus_client import Counter, Gauge, Histogram

# --- Submission / overflow ---

ITEMS_SUBMITTED_TOTAL = Counter(
    "persistq_items_submitted_total",
    "Items submitted to a queue",
    ["queue", "outcome"],  # accepted | discarded
)

QUEUE_SIZE = Gauge(
    "persistq_queue_size",
    "Items currently buffered",
    ["queue"],
)

# --- Delivery ---

DELIVERIES_TOTAL = Counter(
    "persistq_deliveries_total",
    "Delivery attempts by sink kind and outcome",
    ["queue", "sink", "outcome"],
)

DELIVERY_LATENCY_MS = Histogram(
    "persistq_delivery_latency_ms",
    "Delivery attempt latency in milliseconds",
    ["queue", "sink"],
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

RETRIES_TOTAL = Counter(
    "persistq_retries_total",
    "Failed deliveries by retry decision",
    ["queue", "decision"],  # rescheduled | dropped
)


class MetricsRegistry:
    """Structured access to all persistq metrics."""

    items_submitted_total = ITEMS_SUBMITTED_TOTAL
    queue_size = QUEUE_SIZE
    deliveries_total = DELIVERIES_TOTAL
    delivery_latency_ms = DELIVERY_LATENCY_MS
    retries_total = RETRIES_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
