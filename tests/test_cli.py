# tests/test_cli.py

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from jobqueue.cli import cli


@pytest.fixture()
def invoke(tmp_path: Path):
    runner = CliRunner()
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.sqlite3'}"

    def _invoke(*args: str):
        result = runner.invoke(cli, ["--database-url", url, *args], catch_exceptions=False)
        return result

    result = _invoke("init-db")
    assert result.exit_code == 0
    assert "Schema ready." in result.stdout
    return _invoke


def test_enqueue_and_run_once(invoke) -> None:
    result = invoke("enqueue", "echo", "--payload", '{"hello": "world"}')
    assert result.exit_code == 0
    job = json.loads(result.stdout)
    assert job["status"] == "pending"
    assert job["payload"] == {"hello": "world"}

    result = invoke("run-once", "--batch-size", "3")
    assert result.exit_code == 0
    summary = json.loads(result.stdout)
    assert summary["run"]["source"] == "cron"
    assert summary["run"]["status"] == "completed"
    assert summary["results"][0]["id"] == job["id"]
    assert summary["results"][0]["outcome"] == "succeeded"

    report = json.loads(invoke("health").stdout)
    assert report["queue_counts"]["succeeded"] == 1
    assert report["last_trigger"]["stale"] is False


def test_enqueue_recurring(invoke) -> None:
    result = invoke("enqueue", "echo", "--every", "15", "--max-attempts", "2")
    assert result.exit_code == 0
    job = json.loads(result.stdout)
    assert job["is_recurring"] is True
    assert job["recurrence_interval_minutes"] == 15
    assert job["max_attempts"] == 2


def test_enqueue_rejects_bad_input(invoke) -> None:
    result = invoke("enqueue", "echo", "--payload", "not json")
    assert result.exit_code == 2

    result = invoke("enqueue", "echo", "--every", "0")
    assert result.exit_code == 2


def test_pause_and_resume(invoke) -> None:
    paused = json.loads(invoke("pause", "--reason", "deploy in progress").stdout)
    assert paused["processing_enabled"] is False
    assert paused["paused_reason"] == "deploy in progress"

    summary = json.loads(invoke("run-once").stdout)
    assert summary["paused"] is True

    resumed = json.loads(invoke("resume").stdout)
    assert resumed["processing_enabled"] is True
    assert resumed["paused_reason"] is None


def test_disable_and_enable_recurring_job(invoke) -> None:
    job = json.loads(invoke("enqueue", "echo", "--every", "10").stdout)

    disabled = json.loads(invoke("disable", job["id"]).stdout)
    assert disabled["enabled"] is False

    summary = json.loads(invoke("run-once").stdout)
    assert summary["results"] == []

    enabled = json.loads(invoke("enable", job["id"]).stdout)
    assert enabled["enabled"] is True

    summary = json.loads(invoke("run-once").stdout)
    assert summary["results"][0]["outcome"] == "rescheduled"


def test_disable_rejects_one_off_job(invoke) -> None:
    job = json.loads(invoke("enqueue", "echo", "--payload", "[1, 2]").stdout)
    assert job["payload"] == [1, 2]

    result = invoke("disable", job["id"])
    assert result.exit_code == 1
