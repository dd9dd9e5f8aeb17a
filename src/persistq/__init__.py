"""persistq: disk-backed FIFO work queue with retry and backoff.

- PersistentQueue (single-flight processing loop, head-of-queue retries)
- SnapshotStore (tolerant JSON snapshots)
- OverflowPolicy (reject-new with discard list)
- RetryPolicy / RetryScheduler (exponential backoff, 5 retries)
- SinkDispatcher (local handler XOR remote HTTP endpoint)
- QueueEventBus (item_added / discarded notifications)
"""

from .errors import (
    QueueError,
    QueueConfigError,
    SinkConflictError,
    InvalidItemError,
    PersistenceError,
)
from .models import QueueItem, QueueConfig
from .persistence import SnapshotStore
from .overflow import OverflowPolicy
from .policy import MAX_RETRIES, RetryPolicy, RetryScheduler, RetryDecision
from .sinks import (
    NoSink,
    LocalHandler,
    RemoteEndpoint,
    Sink,
    SinkDispatcher,
    DeliveryResult,
)
from .feedback import QueueEvent, QueueEventKind, QueueEventBus
from .settings import QueueRuntimeSettings, get_settings
from .queue import PersistentQueue, create_queue

__all__ = [
    # errors
    "QueueError",
    "QueueConfigError",
    "SinkConflictError",
    "InvalidItemError",
    "PersistenceError",
    # models
    "QueueItem",
    "QueueConfig",
    # components
    "SnapshotStore",
    "OverflowPolicy",
    "MAX_RETRIES",
    "RetryPolicy",
    "RetryScheduler",
    "RetryDecision",
    "NoSink",
    "LocalHandler",
    "RemoteEndpoint",
    "Sink",
    "SinkDispatcher",
    "DeliveryResult",
    "QueueEvent",
    "QueueEventKind",
    "QueueEventBus",
    # runtime
    "QueueRuntimeSettings",
    "get_settings",
    "PersistentQueue",
    "create_queue",
]
