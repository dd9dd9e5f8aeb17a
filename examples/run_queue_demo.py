"""
Demo script for PersistentQueue with a local handler.

Shows overflow discards, flaky-handler retries with backoff, and the snapshot
left on disk after teardown.
"""

import asyncio
import random

from loguru import logger

from persistq import PersistentQueue, QueueEvent, QueueEventKind


class FlakyHandler:
    """Handler that fails roughly one call in four."""

    def __init__(self, failure_rate: float = 0.25):
        self.failure_rate = failure_rate
        self.delivered = 0

    async def __call__(self, payload: dict, queue_name: str) -> None:
        await asyncio.sleep(0.01)  # simulate I/O
        if random.random() < self.failure_rate:
            raise TimeoutError("simulated transient failure")
        self.delivered += 1


async def on_discard(event: QueueEvent):
    logger.warning(f"⚠️  Queue {event.queue_name} full, discarded {event.payload}")


async def main():
    handler = FlakyHandler()

    async with PersistentQueue(
        "demo",
        persistence_interval_ms=250,
        persistence_directory=".queues",
        max_size=50,
    ) as q:
        q.subscribe(on_discard, QueueEventKind.DISCARDED)
        logger.info(f"🚀 Queue {q.name} ({q.uuid}) loaded {len(q)} items from disk")

        # Produce faster than the handler can drain to hit the overflow policy
        for i in range(60):
            await q.submit({"id": i})

        q.register_handler(handler)
        logger.info("⏳ Waiting for deliveries and retries...")
        await q.wait_idle()
        q.save()

        logger.info(
            f"📊 delivered={handler.delivered} remaining={len(q)} discarded={len(q.discarded)}"
        )

    logger.info("✅ Queue demo complete (snapshot kept in .queues/demo.json)")


if __name__ == "__main__":
    asyncio.run(main())
