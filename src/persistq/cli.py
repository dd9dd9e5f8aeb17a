from __future__ import annotations

import asyncio
import json
import sys
from typing import Optional

import typer
from loguru import logger

from .errors import PersistenceError, QueueError
from .models import QueueConfig
from .persistence import SnapshotStore
from .policy import RetryPolicy
from .queue import PersistentQueue
from .settings import get_settings

app = typer.Typer(help="persistq operational CLI")


def _stderr_sink(message) -> None:
    # resolve sys.stderr per message so redirected streams are honored
    sys.stderr.write(message)


# ---------------------------
# Common options
# ---------------------------


def dir_opt() -> str:
    return typer.Option(
        "queues", "--dir", envvar="PERSISTQ_PERSISTENCE_DIRECTORY", help="Snapshot directory"
    )


def max_size_opt() -> int:
    return typer.Option(
        0, "--max-size", envvar="PERSISTQ_MAX_SIZE", help="Queue capacity (0 = unbounded)"
    )


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Loguru level"),
):
    level = (log_level or get_settings().log_level).upper()
    logger.remove()
    logger.add(_stderr_sink, level=level)


def _store(name: str, directory: str) -> SnapshotStore:
    try:
        return SnapshotStore(QueueConfig(name=name, persistence_directory=directory).snapshot_path)
    except QueueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=2)


# ---------------------------
# Snapshot inspection
# ---------------------------


@app.command("inspect")
def inspect_queue(name: str = typer.Argument(...), directory: str = dir_opt()):
    """Print the persisted snapshot of a queue."""
    store = _store(name, directory)
    if not store.exists():
        typer.echo(json.dumps({"queue": name, "length": 0, "items": []}, indent=2))
        return
    try:
        records = store.read_records()
    except PersistenceError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"queue": name, "length": len(records), "items": records}, indent=2))


@app.command("drain")
def drain(name: str = typer.Argument(...), directory: str = dir_opt()):
    """Empty the persisted snapshot of a queue."""
    store = _store(name, directory)
    if not store.save([]):
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"queue": name, "drained": True}))


@app.command("push")
def push(
    name: str = typer.Argument(...),
    payload: str = typer.Argument(..., help="JSON object"),
    directory: str = dir_opt(),
    max_size: int = max_size_opt(),
):
    """Append one JSON object to the persisted queue."""
    try:
        obj = json.loads(payload)
    except ValueError as e:
        typer.echo(f"❌ Invalid JSON: {e}", err=True)
        raise typer.Exit(code=2)

    async def _run() -> bool:
        async with PersistentQueue(name, 0, directory, max_size) as q:
            accepted = await q.submit(obj)
            return accepted

    try:
        accepted = asyncio.run(_run())
    except QueueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps({"queue": name, "accepted": accepted}))
    if not accepted:
        raise typer.Exit(code=1)


# ---------------------------
# Delivery
# ---------------------------


@app.command("deliver")
def deliver(
    name: str = typer.Argument(...),
    url: str = typer.Option(..., "--url", envvar="PERSISTQ_REMOTE_URL", help="Endpoint URL"),
    api_key: str = typer.Option(..., "--api-key", envvar="PERSISTQ_API_KEY", help="API key"),
    method: str = typer.Option("POST", "--method", help="GET or POST"),
    directory: str = dir_opt(),
    timeout: float = typer.Option(30.0, "--timeout", help="Give up after this many seconds"),
):
    """Deliver persisted items to a remote endpoint, persisting whatever remains."""
    settings = get_settings()

    async def _run() -> int:
        q = PersistentQueue(name, 0, directory, retry_policy=RetryPolicy.from_settings(settings))
        logger.info(f"Delivering {len(q)} items from queue {name} to {url}")
        try:
            q.register_remote_sink(url, api_key, method, timeout=settings.remote_timeout_sec)
            try:
                await asyncio.wait_for(q.wait_idle(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out after {timeout}s")
            q.reclaim_retries()
            q.save()
            return len(q)
        finally:
            await q.aclose()

    try:
        remaining = asyncio.run(_run())
    except QueueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps({"queue": name, "remaining": remaining}))


if __name__ == "__main__":
    app()
