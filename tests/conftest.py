"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from gaiactl.config import load_config
from gaiactl.providers.process import CommandFailedError, ProcessHandle
from gaiactl.runtime import NodeRuntime, build_runtime


class FakeProcessRunner:
    """Process runner stand-in that records submissions and scripts results."""

    def __init__(
        self,
        outputs: Mapping[str, str] | None = None,
        failures: Mapping[str, str] | None = None,
    ) -> None:
        """Script per-step *outputs* and per-step *failures* (diagnostic text)."""
        self.outputs = dict(outputs or {})
        self.failures = dict(failures or {})
        self.submitted: list[tuple[str, str]] = []
        self.completed: list[str] = []

    @property
    def submitted_names(self) -> list[str]:
        """Return the step names submitted so far, in order."""
        return [name for name, _ in self.submitted]

    def submit(self, step_name: str, command: str) -> ProcessHandle:
        self.submitted.append((step_name, command))
        return ProcessHandle(step_name=step_name, command=command)

    def await_completion(self, handle: ProcessHandle) -> str:
        self.completed.append(handle.step_name)
        if handle.step_name in self.failures:
            raise CommandFailedError(handle.step_name, 1, self.failures[handle.step_name])
        return self.outputs.get(handle.step_name, f"{handle.step_name} ok\n")


@pytest.fixture
def fake_runner_cls() -> type[FakeProcessRunner]:
    """Return the fake process runner class for scripting per-test behaviour."""
    return FakeProcessRunner


@pytest.fixture
def make_runtime(tmp_path: Path) -> Callable[..., NodeRuntime]:
    """Return a factory building a runtime rooted in ``tmp_path``."""

    def factory(runner: FakeProcessRunner, **overrides: object) -> NodeRuntime:
        values: dict[str, object] = {
            "base_dir": str(tmp_path / "gaianet"),
            "logs_dir": str(tmp_path / "logs"),
            "runtime_dir": str(tmp_path / "run"),
            "lock_timeout": 0.2,
        }
        values.update(overrides)
        config = load_config(config_file=tmp_path / "missing.yml", env={}, overrides=values)
        return build_runtime(config, runner=runner)

    return factory
