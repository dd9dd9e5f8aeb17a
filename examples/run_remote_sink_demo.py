"""
Demo: delivering queue items to a remote endpoint.

Runs a mock webhook server (aiohttp) that rejects the first attempt for every
third item by dropping the connection, so retries and backoff are visible.

Requires:
- aiohttp installed (pip install "persistq[examples]")
"""

import asyncio

from aiohttp import web
from loguru import logger

from persistq import PersistentQueue

received = []
attempts: dict[int, int] = {}


async def webhook_handler(request: web.Request):
    """Mock endpoint; the API key arrives in the x-api-key header."""
    data = await request.json()
    item_id = data["id"]
    attempts[item_id] = attempts.get(item_id, 0) + 1

    if item_id % 3 == 0 and attempts[item_id] == 1:
        # Abort without a response so the client sees a transport error
        request.transport.close()
        return web.Response(status=500)

    received.append(data)
    logger.info(f"📨 Webhook received {data} (key={request.headers.get('x-api-key')})")
    return web.Response(text="OK", status=200)


async def run_mock_server():
    app = web.Application()
    app.router.add_post("/hook", webhook_handler)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", 8765)
    await site.start()

    logger.info("🌐 Mock webhook server started at http://localhost:8765/hook")
    return runner


async def main():
    server = await run_mock_server()
    try:
        async with PersistentQueue("remote-demo", persistence_directory=".queues") as q:
            q.register_remote_sink("http://localhost:8765/hook", "demo-key", "post")

            for i in range(1, 10):
                await q.submit({"id": i, "body": f"item-{i}"})

            await asyncio.wait_for(q.wait_idle(), timeout=10)
            logger.info(f"📊 remaining={len(q)} received={len(received)}")

        retried = sorted(k for k, n in attempts.items() if n > 1)
        logger.info(f"✅ Demo complete, retried items: {retried}")
    finally:
        await server.cleanup()
        logger.info("🛑 Mock server stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("⚠️  Interrupted")
