"""Tests for the runtime wiring of locks, logging and lifecycle."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from gaiactl.errors import ProcessExecutionError, UnknownKeyError
from gaiactl.locking import LockTimeoutError
from gaiactl.models import ConfigUpdate, LifecycleOperation

START_OUTPUT = "starting\nhttps://0x1234.gaianet.xyz\n"


def _last_record(tmp_path: Path) -> dict[str, object]:
    lines = (tmp_path / "logs" / "operations.jsonl").read_text(encoding="utf-8").splitlines()
    return json.loads(lines[-1])


def test_execute_records_steps_and_public_url(tmp_path: Path, fake_runner_cls, make_runtime) -> None:
    """Successful operations log every step and the derived public URL."""
    runner = fake_runner_cls(outputs={"start": START_OUTPUT})
    runtime = make_runtime(runner)

    result = runtime.execute(LifecycleOperation.INSTALL)

    assert result.public_url == "https://0x1234.gaianet.xyz"
    record = _last_record(tmp_path)
    assert record["command"] == "install"
    assert record["target"] == {"kind": "node", "name": "default"}
    assert isinstance(record["lock_wait_ms"], int)
    assert record["steps"] == [
        {"name": "install-binary", "status": "success", "detail": "1/4"},
        {"name": "profile reload", "status": "success", "detail": "2/4"},
        {"name": "initialize", "status": "success", "detail": "3/4"},
        {"name": "start", "status": "success", "detail": "4/4"},
    ]
    result_block = record["result"]
    assert isinstance(result_block, dict)
    assert result_block["status"] == "success"
    assert result_block["changed"] == 4
    assert result_block["context"] == {
        "steps": ["install-binary", "profile reload", "initialize", "start"],
        "public_url": "https://0x1234.gaianet.xyz",
    }


def test_execute_records_failed_step(tmp_path: Path, fake_runner_cls, make_runtime) -> None:
    """Process failures are logged with their structured fields and re-raised."""
    runner = fake_runner_cls(failures={"stop": "no such process"})
    runtime = make_runtime(runner)

    with pytest.raises(ProcessExecutionError):
        runtime.execute(LifecycleOperation.UPGRADE)

    record = _last_record(tmp_path)
    assert record["steps"] == [{"name": "stop", "status": "failed", "detail": "1/4"}]
    result_block = record["result"]
    assert isinstance(result_block, dict)
    assert result_block["status"] == "error"
    context = result_block["context"]
    assert isinstance(context, dict)
    assert context["type"] == "process_execution"
    assert context["step_name"] == "stop"


def test_execute_rejects_invalid_updates_before_running(
    tmp_path: Path,
    fake_runner_cls,
    make_runtime,
) -> None:
    """Validation errors are logged and no command is submitted."""
    runner = fake_runner_cls()
    runtime = make_runtime(runner)

    with pytest.raises(UnknownKeyError):
        runtime.execute(LifecycleOperation.CONFIGURE, [ConfigUpdate("colour", "blue")])

    assert runner.submitted == []
    record = _last_record(tmp_path)
    result_block = record["result"]
    assert isinstance(result_block, dict)
    context = result_block["context"]
    assert isinstance(context, dict)
    assert context["type"] == "unknown_key"


def test_execute_times_out_when_node_locked(fake_runner_cls, make_runtime) -> None:
    """A held node lock prevents a concurrent operation from starting."""
    runner = fake_runner_cls()
    runtime = make_runtime(runner)

    with runtime.locks.node_lock("default"):
        with pytest.raises(LockTimeoutError):
            runtime.execute(LifecycleOperation.STOP)

    assert runner.submitted == []


def test_build_runtime_uses_configured_node(fake_runner_cls, make_runtime) -> None:
    """Configuration feeds the command templates and validator base directory."""
    runtime = make_runtime(fake_runner_cls(), node={"bin": "/opt/gaianet/bin/gaianet"})

    assert [step.command for step in runtime.lifecycle.stop_steps()] == [
        "/opt/gaianet/bin/gaianet stop"
    ]
    assert runtime.lifecycle.public_url_markers == ("https://", ".gaianet.xyz")
