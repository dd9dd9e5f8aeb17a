"""
Unit tests for the persistq CLI.
"""

import json

import httpx
import pytest
from typer.testing import CliRunner

from persistq.cli import app


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(app, [str(a) for a in args])


def test_push_then_inspect(runner, queue_dir):
    assert invoke(runner, "push", "jobs", '{"id": 1}', "--dir", queue_dir).exit_code == 0
    assert invoke(runner, "push", "jobs", '{"id": 2}', "--dir", queue_dir).exit_code == 0

    result = invoke(runner, "inspect", "jobs", "--dir", queue_dir)
    assert result.exit_code == 0
    out = json.loads(result.stdout)
    assert out["length"] == 2
    assert out["items"] == [{"id": 1, "_retries": 0}, {"id": 2, "_retries": 0}]


def test_push_respects_capacity(runner, queue_dir):
    invoke(runner, "push", "jobs", '{"id": 1}', "--dir", queue_dir, "--max-size", 1)
    result = invoke(runner, "push", "jobs", '{"id": 2}', "--dir", queue_dir, "--max-size", 1)
    assert result.exit_code == 1
    assert json.loads(result.stdout)["accepted"] is False


def test_push_rejects_bad_input(runner, queue_dir):
    assert invoke(runner, "push", "jobs", "{oops", "--dir", queue_dir).exit_code == 2
    assert invoke(runner, "push", "jobs", "[1, 2]", "--dir", queue_dir).exit_code == 2


def test_inspect_missing_queue(runner, queue_dir):
    result = invoke(runner, "inspect", "nothing", "--dir", queue_dir)
    assert result.exit_code == 0
    assert json.loads(result.stdout)["length"] == 0


def test_inspect_corrupt_snapshot(runner, queue_dir):
    queue_dir.mkdir(parents=True)
    (queue_dir / "jobs.json").write_text("not json", encoding="utf-8")
    assert invoke(runner, "inspect", "jobs", "--dir", queue_dir).exit_code == 1


def test_drain(runner, queue_dir):
    invoke(runner, "push", "jobs", '{"id": 1}', "--dir", queue_dir)
    assert invoke(runner, "drain", "jobs", "--dir", queue_dir).exit_code == 0
    assert json.loads((queue_dir / "jobs.json").read_text(encoding="utf-8")) == []


def test_deliver_sends_backlog(runner, queue_dir, monkeypatch):
    received = []

    def transport(request: httpx.Request) -> httpx.Response:
        received.append((request.headers["x-api-key"], json.loads(request.content)))
        return httpx.Response(200)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(transport)),
    )

    invoke(runner, "push", "jobs", '{"id": 1}', "--dir", queue_dir)
    invoke(runner, "push", "jobs", '{"id": 2}', "--dir", queue_dir)

    result = invoke(
        runner,
        "deliver",
        "jobs",
        "--url",
        "http://localhost:9999/hook",
        "--api-key",
        "secret",
        "--dir",
        queue_dir,
        "--timeout",
        5,
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout.strip().splitlines()[-1])["remaining"] == 0
    assert received == [("secret", {"id": 1}), ("secret", {"id": 2})]
    assert json.loads((queue_dir / "jobs.json").read_text(encoding="utf-8")) == []
