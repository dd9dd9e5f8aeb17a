"""
Queue notifications.

In-process pub/sub for ``item_added`` and ``discarded`` events. Multiple
subscribers are supported with error isolation: one subscriber's failure does
not affect others. Events are neither persisted nor transmitted.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger


class QueueEventKind(str, Enum):
    """Observable queue events."""

    ITEM_ADDED = "item_added"  # Accepted into the buffer
    DISCARDED = "discarded"  # Rejected by the overflow policy


@dataclass(frozen=True)
class QueueEvent:
    """Immutable queue notification.

    Attributes:
        queue_name: Name of the emitting queue
        kind: Event kind
        payload: The submitted payload
    """

    queue_name: str
    kind: QueueEventKind
    payload: Any


QueueSubscriber = Callable[[QueueEvent], Union[None, Awaitable[None]]]


class QueueEventBus:
    """Per-queue pub/sub bus.

    Subscribers may be plain functions or coroutine functions and can filter
    on a single event kind.

    Example:
        bus = QueueEventBus()

        async def on_discard(event: QueueEvent):
            await dead_letters.save(event.payload)

        bus.subscribe(on_discard, QueueEventKind.DISCARDED)
    """

    def __init__(self) -> None:
        self._subs: list[tuple[QueueSubscriber, Optional[QueueEventKind]]] = []

    def subscribe(self, callback: QueueSubscriber, kind: Optional[QueueEventKind] = None) -> None:
        """Add a subscriber.

        Args:
            callback: Callable accepting QueueEvent
            kind: Only deliver events of this kind (all kinds when None)
        """
        entry = (callback, QueueEventKind(kind) if kind is not None else None)
        if entry not in self._subs:
            self._subs.append(entry)
            logger.debug(f"Queue subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: QueueSubscriber) -> None:
        """Remove every registration of ``callback``. No-op if not found."""
        before = len(self._subs)
        self._subs = [(cb, k) for cb, k in self._subs if cb != callback]
        if len(self._subs) != before:
            logger.debug(f"Queue subscriber removed (total: {len(self._subs)})")

    def clear(self) -> None:
        self._subs.clear()

    async def publish(self, event: QueueEvent) -> None:
        """Publish to matching subscribers in registration order (best effort)."""
        if not self._subs:
            return

        # Iterate over copy to allow unsubscribe during iteration
        for callback, kind in list(self._subs):
            if kind is not None and kind != event.kind:
                continue
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.debug(f"Queue subscriber error (ignored): {type(exc).__name__}: {exc}")

    @property
    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subs)
