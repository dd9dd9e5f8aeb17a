"""
Pytest configuration and fixtures for persistq.

Provides cross-platform event loop configuration and queue fixtures.
"""

import asyncio
import sys

import pytest

from persistq import RetryPolicy

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def queue_dir(tmp_path):
    """Snapshot directory that does not exist yet."""
    return tmp_path / "queues"


@pytest.fixture
def fast_retry():
    """Retry policy with millisecond backoff so retry tests finish quickly."""
    return RetryPolicy(max_retries=5, initial_backoff_ms=1, backoff_multiplier=2.0)
