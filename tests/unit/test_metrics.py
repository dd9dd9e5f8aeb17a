"""
Unit tests for queue metrics (light sanity checks).
"""

import asyncio

import pytest
from prometheus_client import REGISTRY

from persistq import PersistentQueue
from persistq.metrics import metrics_registry


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_registry_exposes_collectors():
    assert metrics_registry.items_submitted_total is not None
    assert metrics_registry.queue_size is not None
    assert metrics_registry.deliveries_total is not None
    assert metrics_registry.delivery_latency_ms is not None
    assert metrics_registry.retries_total is not None


@pytest.mark.asyncio
async def test_submit_and_delivery_update_metrics(queue_dir):
    q = PersistentQueue("metrics-test", persistence_directory=str(queue_dir), max_size=2)
    accepted = sample("persistq_items_submitted_total", queue="metrics-test", outcome="accepted")
    discarded = sample("persistq_items_submitted_total", queue="metrics-test", outcome="discarded")

    for i in range(3):
        await q.submit({"id": i})

    assert sample(
        "persistq_items_submitted_total", queue="metrics-test", outcome="accepted"
    ) == accepted + 2
    assert sample(
        "persistq_items_submitted_total", queue="metrics-test", outcome="discarded"
    ) == discarded + 1
    assert sample("persistq_queue_size", queue="metrics-test") == 2

    delivered = sample(
        "persistq_deliveries_total", queue="metrics-test", sink="handler", outcome="success"
    )
    q.register_handler(lambda payload, name: None)
    await asyncio.wait_for(q.wait_idle(), timeout=2)

    assert sample("persistq_queue_size", queue="metrics-test") == 0
    assert sample(
        "persistq_deliveries_total", queue="metrics-test", sink="handler", outcome="success"
    ) == delivered + 2
