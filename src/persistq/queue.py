"""
Persistent FIFO work queue.

Core delivery engine: an in-memory buffer snapshotted to disk, a single-flight
processing loop that hands each head item to the active sink, exponential
backoff retry with head-of-queue reinsertion, and a reject-new overflow
policy. Everything runs on one asyncio event loop; the ``_processing`` flag is
the only concurrency guard.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from collections import deque
from typing import Any, Deque, List, Mapping, Optional

import httpx
from loguru import logger

from .errors import InvalidItemError, QueueError
from .feedback import QueueEvent, QueueEventBus, QueueEventKind, QueueSubscriber
from .metrics import metrics_registry
from .models import RETRIES_FIELD, QueueConfig, QueueItem
from .overflow import OverflowPolicy
from .persistence import SnapshotStore
from .policy import RetryPolicy, RetryScheduler
from .settings import QueueRuntimeSettings, get_settings
from .sinks import Handler, SinkDispatcher


class PersistentQueue:
    """Disk-backed FIFO queue delivering to one handler or remote endpoint.

    Example:
        async with PersistentQueue("jobs", persistence_directory=".queues") as q:
            q.register_handler(process_job)
            await q.submit({"id": 1})
    """

    def __init__(
        self,
        name: str,
        persistence_interval_ms: int = 0,
        persistence_directory: str = "queues",
        max_size: int = 0,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = QueueConfig(
            name=name,
            persistence_interval_ms=persistence_interval_ms,
            persistence_directory=persistence_directory,
            max_size=max_size,
        )
        self._uuid = str(uuid.uuid4())
        self._seq = itertools.count()

        self._store = SnapshotStore(self.config.snapshot_path, max_size=max_size)
        self._overflow = OverflowPolicy(max_size)
        self._dispatcher = SinkDispatcher(name)
        self._scheduler = RetryScheduler(self._resume, retry_policy, queue_name=name)
        self._events = QueueEventBus()

        self._data: Deque[QueueItem] = deque()
        for item in self._store.load():
            item.seq = next(self._seq)
            self._data.append(item)

        self._processing = False
        self._task: Optional[asyncio.Task[None]] = None
        self._disposed = False
        # bumped by drain(); failures of items taken earlier are not retried
        self._generation = 0

        self._persist_handle: Optional[asyncio.TimerHandle] = None
        self._persistence_stopped = persistence_interval_ms == 0
        self._arm_persistence()

        self._update_gauge()
        logger.debug(
            f"Queue {name} ready: {len(self._data)} items loaded from {self._store.path}"
        )

    @classmethod
    def from_config(
        cls, config: QueueConfig, *, retry_policy: Optional[RetryPolicy] = None
    ) -> "PersistentQueue":
        return cls(
            config.name,
            config.persistence_interval_ms,
            str(config.persistence_directory),
            config.max_size,
            retry_policy=retry_policy,
        )

    @classmethod
    def from_settings(cls, settings: Optional[QueueRuntimeSettings] = None) -> "PersistentQueue":
        settings = settings or get_settings()
        return cls.from_config(
            QueueConfig.from_settings(settings),
            retry_policy=RetryPolicy.from_settings(settings),
        )

    # -------- accessors --------

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def size(self) -> int:
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def capacity(self) -> int:
        """Configured max size (0 = unbounded)."""
        return self.config.max_size

    @property
    def discarded(self) -> List[Any]:
        """Payloads rejected by the overflow policy, oldest first."""
        return self._overflow.discarded

    def to_list(self) -> List[QueueItem]:
        """Shallow copy of the buffer, head first."""
        return list(self._data)

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def pending_retries(self) -> int:
        return self._scheduler.pending

    @property
    def idle(self) -> bool:
        """True when no loop is running and no retry is waiting on its backoff."""
        return not self._processing and self._scheduler.pending == 0

    @property
    def events(self) -> QueueEventBus:
        return self._events

    def subscribe(self, callback: QueueSubscriber, kind: Optional[QueueEventKind] = None) -> None:
        self._events.subscribe(callback, kind)

    def unsubscribe(self, callback: QueueSubscriber) -> None:
        self._events.unsubscribe(callback)

    # -------- producer API --------

    async def submit(self, payload: Mapping[str, Any]) -> bool:
        """Add a payload to the tail of the queue.

        Returns:
            True if accepted, False if discarded because the queue is full

        Raises:
            InvalidItemError: ``payload`` is None or not a mapping
            QueueError: the queue has been disposed
        """
        if payload is None:
            raise InvalidItemError("Cannot add None to the queue.")
        if not isinstance(payload, Mapping):
            raise InvalidItemError(
                f"Queue items must be JSON objects (mappings), got {type(payload).__name__}"
            )
        if self._disposed:
            raise QueueError(f"Queue {self.name} is disposed")

        if not self._overflow.admit(payload, len(self._data)):
            metrics_registry.items_submitted_total.labels(self.name, "discarded").inc()
            logger.debug(f"Queue {self.name} full ({self.capacity}), discarding item")
            await self._events.publish(QueueEvent(self.name, QueueEventKind.DISCARDED, payload))
            return False

        fields = {k: v for k, v in payload.items() if k != RETRIES_FIELD}
        item = QueueItem(payload=fields, retries=0, seq=next(self._seq))
        self._data.append(item)
        metrics_registry.items_submitted_total.labels(self.name, "accepted").inc()
        self._update_gauge()

        await self._events.publish(QueueEvent(self.name, QueueEventKind.ITEM_ADDED, item.payload))
        self._store.save(self._data)
        self._arm_persistence()
        self._kick()
        return True

    def take(self, remove: bool = True) -> Optional[QueueItem]:
        """Return the head item, removing it unless ``remove`` is False.

        Returns None when the queue is empty.
        """
        if not self._data:
            return None
        if not remove:
            return self._data[0]
        item = self._data.popleft()
        self._update_gauge()
        return item

    # -------- sink registration --------

    def register_handler(self, handler: Handler) -> None:
        """Deliver items to ``handler(payload, queue_name)``.

        Raises:
            QueueConfigError: handler is not callable
            SinkConflictError: a remote sink is already registered
        """
        self._dispatcher.register_handler(handler)
        self._kick()

    def register_remote_sink(
        self,
        url: str,
        api_key: str,
        method: str = "POST",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        """Deliver items to an HTTP endpoint (GET or POST).

        Raises:
            QueueConfigError: url/api_key not strings, or invalid method
            SinkConflictError: a handler is already registered
        """
        self._dispatcher.register_remote(url, api_key, method, client=client, timeout=timeout)
        self._kick()

    # -------- processing loop --------

    def _kick(self) -> None:
        """Start the processing loop unless one is already running."""
        if self._processing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next submit/registration/resume starts processing
            logger.debug(f"Queue {self.name}: no running event loop, processing deferred")
            return
        self._processing = True
        self._task = loop.create_task(self._process())

    async def _process(self) -> None:
        try:
            if not self._dispatcher.has_sink:
                return
            while self._data:
                item = self._data.popleft()
                self._update_gauge()
                generation = self._generation
                result = await self._dispatcher.deliver(item)
                if result.ok:
                    continue
                if generation != self._generation:
                    # drained while in flight
                    logger.info(f"Queue {self.name}: dropping failed item taken before drain")
                    continue
                self._scheduler.on_failure(item, result.error)
        finally:
            self._processing = False

    def _resume(self, item: QueueItem) -> None:
        if self._disposed:
            return
        self._reinsert(item)
        self._kick()

    def _reinsert(self, item: QueueItem) -> None:
        """Put a retried item back at the head, after earlier-submitted retries."""
        index = 0
        for queued in self._data:
            if queued.retries == 0 or queued.seq > item.seq:
                break
            index += 1
        self._data.insert(index, item)
        self._update_gauge()

    def reclaim_retries(self) -> int:
        """Cancel pending backoffs and put those items back at the head without delivering.

        Returns the number of reclaimed items.
        """
        items = sorted(self._scheduler.cancel_all(), key=lambda i: i.seq)
        for item in items:
            self._reinsert(item)
        return len(items)

    async def wait_idle(self, poll_interval: float = 0.01) -> None:
        """Wait until the processing loop stops and no retries are pending."""
        while not self.idle:
            await asyncio.sleep(poll_interval)

    # -------- persistence --------

    def _arm_persistence(self) -> None:
        if self._persistence_stopped or self._persist_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._persist_handle = loop.call_later(
            self.config.persistence_interval_ms / 1000.0, self._on_persist_tick
        )

    def _on_persist_tick(self) -> None:
        self._persist_handle = None
        self._store.save(self._data)
        self._arm_persistence()

    def save(self) -> bool:
        """Snapshot the current buffer now."""
        return self._store.save(self._data)

    def stop_persistence(self) -> None:
        """Halt periodic snapshotting; submit and drain still persist."""
        self._persistence_stopped = True
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None

    # -------- teardown --------

    def drain(self) -> None:
        """Drop all buffered items and pending retries, persist the empty buffer.

        The discard list is kept. Periodic persistence is halted.
        """
        dropped = len(self._data)
        self._generation += 1
        self._data.clear()
        self._scheduler.cancel_all()
        self._update_gauge()
        self._store.save(self._data)
        self.stop_persistence()
        logger.info(f"Queue {self.name} drained ({dropped} items dropped)")

    def dispose(self) -> None:
        """Tear down in-memory state. The snapshot file and discard list are kept."""
        self.stop_persistence()
        self._scheduler.close()
        self._events.clear()
        self._data.clear()
        self._disposed = True
        self._update_gauge()
        logger.debug(f"Queue {self.name} disposed")

    async def aclose(self) -> None:
        """Dispose, let an in-flight delivery finish, then close the HTTP client."""
        self.dispose()
        if self._task is not None and not self._task.done():
            await self._task
        await self._dispatcher.aclose()

    async def __aenter__(self) -> "PersistentQueue":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _update_gauge(self) -> None:
        metrics_registry.queue_size.labels(self.name).set(len(self._data))


def create_queue(
    name: str,
    persistence_interval_ms: int = 0,
    persistence_directory: str = "queues",
    max_size: int = 0,
    *,
    retry_policy: Optional[RetryPolicy] = None,
) -> PersistentQueue:
    return PersistentQueue(
        name,
        persistence_interval_ms,
        persistence_directory,
        max_size,
        retry_policy=retry_policy,
    )
