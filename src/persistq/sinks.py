"""
Delivery sinks and dispatcher.

A queue delivers to exactly one sink, modeled as a tagged variant:

- ``NoSink``: nothing registered yet
- ``LocalHandler``: ``callback(payload, queue_name)``, sync or async
- ``RemoteEndpoint``: HTTP GET/POST with an ``x-api-key`` header

Success means "no exception": a handler's return value is ignored and any HTTP
response, whatever its status, counts as delivered.
"""

from __future__ import annotations

import inspect
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from loguru import logger

from .errors import QueueConfigError, SinkConflictError
from .metrics.registry import DELIVERIES_TOTAL, DELIVERY_LATENCY_MS
from .models import QueueItem

ALLOWED_METHODS = ("GET", "POST")
API_KEY_HEADER = "x-api-key"

Handler = Callable[[dict[str, Any], str], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class NoSink:
    kind: str = "none"


@dataclass(frozen=True)
class LocalHandler:
    callback: Handler
    kind: str = "handler"


@dataclass(frozen=True)
class RemoteEndpoint:
    url: str
    api_key: str
    method: str = "POST"
    kind: str = "remote"

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", API_KEY_HEADER: self.api_key}


Sink = Union[NoSink, LocalHandler, RemoteEndpoint]


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    error: Optional[str] = None


def normalize_method(method: Any) -> str:
    if not isinstance(method, str) or method.upper() not in ALLOWED_METHODS:
        raise QueueConfigError(f"Invalid HTTP method: {method!r} (expected GET or POST)")
    return method.upper()


class SinkDispatcher:
    """Routes items to the single active sink and normalizes the outcome."""

    def __init__(self, queue_name: str):
        self._queue_name = queue_name
        self._sink: Sink = NoSink()
        self._client: Optional[httpx.AsyncClient] = None
        self._owns_client = False
        # owned clients replaced by a caller-supplied one, closed in aclose()
        self._retired: list[httpx.AsyncClient] = []

    @property
    def active(self) -> Sink:
        return self._sink

    @property
    def has_sink(self) -> bool:
        return not isinstance(self._sink, NoSink)

    def register_handler(self, handler: Handler) -> LocalHandler:
        if not callable(handler):
            raise QueueConfigError("Handler must be callable.")
        if isinstance(self._sink, RemoteEndpoint):
            raise SinkConflictError(
                "Cannot register a handler when a remote sink is already registered."
            )
        self._sink = LocalHandler(handler)
        logger.info(f"Queue {self._queue_name}: handler registered")
        return self._sink

    def register_remote(
        self,
        url: str,
        api_key: str,
        method: str = "POST",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> RemoteEndpoint:
        if not isinstance(url, str) or not isinstance(api_key, str):
            raise QueueConfigError("Remote sink URL and API key must be strings.")
        method = normalize_method(method)
        if isinstance(self._sink, LocalHandler):
            raise SinkConflictError(
                "Cannot register a remote sink when a handler is already registered."
            )

        if client is not None:
            if self._owns_client and self._client is not None and self._client is not client:
                self._retired.append(self._client)
            self._client, self._owns_client = client, False
        elif self._client is None:
            self._client, self._owns_client = httpx.AsyncClient(timeout=timeout), True

        self._sink = RemoteEndpoint(url=url, api_key=api_key, method=method)
        logger.info(f"Queue {self._queue_name}: remote sink registered ({method} {url})")
        return self._sink

    async def deliver(self, item: QueueItem) -> DeliveryResult:
        sink = self._sink
        start = time.perf_counter()

        if isinstance(sink, LocalHandler):
            result = await self._call_handler(sink, item)
        elif isinstance(sink, RemoteEndpoint):
            result = await self._send_remote(sink, item)
        elif isinstance(sink, NoSink):
            return DeliveryResult(ok=False, error="no sink configured")
        else:  # pragma: no cover
            raise AssertionError(f"unknown sink variant: {sink!r}")

        DELIVERY_LATENCY_MS.labels(self._queue_name, sink.kind).observe(
            (time.perf_counter() - start) * 1000.0
        )
        DELIVERIES_TOTAL.labels(
            self._queue_name, sink.kind, "success" if result.ok else "failure"
        ).inc()
        return result

    async def _call_handler(self, sink: LocalHandler, item: QueueItem) -> DeliveryResult:
        try:
            outcome = sink.callback(item.payload, self._queue_name)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")
        return DeliveryResult(ok=True)

    async def _send_remote(self, sink: RemoteEndpoint, item: QueueItem) -> DeliveryResult:
        if self._client is None:
            return DeliveryResult(ok=False, error="HTTP client is closed")

        content = json.dumps(item.to_wire()) if sink.method == "POST" else None
        try:
            response = await self._client.request(
                sink.method, sink.url, headers=sink.headers, content=content
            )
        except Exception as e:
            logger.error(f"Error sending to remote sink {sink.url}: {type(e).__name__}: {e}")
            return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")

        logger.debug(f"Remote sink {sink.url} responded {response.status_code}")
        return DeliveryResult(ok=True)

    async def aclose(self) -> None:
        while self._retired:
            await self._retired.pop().aclose()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
        self._owns_client = False
