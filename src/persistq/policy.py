"""
Retry policy and backoff scheduler.

A failed item is rescheduled with exponential backoff until its retry counter
reaches ``max_retries``; after that it is dropped and logged. Backoff never
blocks the event loop: each pending retry is an ``asyncio.TimerHandle`` owned
by the scheduler, so the whole set can be cancelled on drain or teardown.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger

from .metrics.registry import RETRIES_TOTAL
from .models import QueueItem

MAX_RETRIES = 5


class RetryDecision(str, Enum):
    RESCHEDULE = "rescheduled"
    DROP = "dropped"


@dataclass
class RetryPolicy:
    """Exponential backoff: ``initial_backoff_ms * backoff_multiplier ** retries``.

    With the defaults the delays are 100, 200, 400, 800 and 1600 ms.
    """

    max_retries: int = MAX_RETRIES
    initial_backoff_ms: int = 100
    backoff_multiplier: float = 2.0

    def should_retry(self, retries: int) -> bool:
        return retries < self.max_retries

    def next_backoff_ms(self, retries: int) -> int:
        return int(self.initial_backoff_ms * (self.backoff_multiplier**retries))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            initial_backoff_ms=settings.initial_backoff_ms,
            backoff_multiplier=settings.backoff_multiplier,
        )


ResumeCallback = Callable[[QueueItem], None]


class RetryScheduler:
    """Schedules re-delivery of failed items after their backoff delay.

    ``on_resume`` is invoked from the event loop once the delay elapses; the
    queue uses it to put the item back at the head and restart processing.
    """

    def __init__(
        self,
        on_resume: ResumeCallback,
        policy: Optional[RetryPolicy] = None,
        *,
        queue_name: str = "",
    ):
        self.policy = policy or RetryPolicy()
        self._on_resume = on_resume
        self._queue_name = queue_name
        self._handles: Dict[asyncio.TimerHandle, QueueItem] = {}
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._handles)

    def on_failure(self, item: QueueItem, error: str | None = None) -> RetryDecision:
        retries = item.retries
        if self._closed:
            logger.warning(
                f"Queue {self._queue_name} is disposed, dropping failed item: {item.payload}"
            )
            RETRIES_TOTAL.labels(self._queue_name, RetryDecision.DROP.value).inc()
            return RetryDecision.DROP
        if not self.policy.should_retry(retries):
            logger.error(
                f"Max retries exceeded for item in queue {self._queue_name}: "
                f"{item.payload} (retries={retries}, last_error={error})"
            )
            RETRIES_TOTAL.labels(self._queue_name, RetryDecision.DROP.value).inc()
            return RetryDecision.DROP

        item.retries = retries + 1
        delay_ms = self.policy.next_backoff_ms(retries)
        loop = asyncio.get_running_loop()

        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._handles.pop(handle, None)
            self._on_resume(item)

        handle = loop.call_later(delay_ms / 1000.0, _fire)
        self._handles[handle] = item

        logger.warning(
            f"Delivery failed in queue {self._queue_name}, retry {item.retries}/"
            f"{self.policy.max_retries} in {delay_ms}ms: {error}"
        )
        RETRIES_TOTAL.labels(self._queue_name, RetryDecision.RESCHEDULE.value).inc()
        return RetryDecision.RESCHEDULE

    def cancel_all(self) -> List[QueueItem]:
        """Cancel every pending retry and return the items that were waiting."""
        items = list(self._handles.values())
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        if items:
            logger.debug(f"Cancelled {len(items)} pending retries for queue {self._queue_name}")
        return items

    def close(self) -> None:
        self.cancel_all()
        self._closed = True
