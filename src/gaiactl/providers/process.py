"""Process runner used to execute lifecycle step commands."""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class CommandFailedError(RuntimeError):
    """Raised when a submitted command cannot be spawned or exits non-zero."""

    def __init__(self, step_name: str, returncode: int | None, output: str) -> None:
        """Record the exit status and combined output of the failed command."""
        self.step_name = step_name
        self.returncode = returncode
        self.output = output
        status = "could not be started" if returncode is None else f"exited {returncode}"
        super().__init__(f"{step_name} {status}")


@dataclass(slots=True)
class ProcessHandle:
    """Reference to a submitted command."""

    step_name: str
    command: str
    process: subprocess.Popen[str] | None = None


class ProcessRunner(Protocol):
    """Collaborator that spawns one command and waits for it to finish."""

    def submit(self, step_name: str, command: str) -> ProcessHandle:
        """Start *command* and return a handle for it."""
        ...

    def await_completion(self, handle: ProcessHandle) -> str:
        """Block until *handle* finishes and return its captured output."""
        ...


@dataclass(slots=True)
class SubprocessRunner:
    """Run commands through a shell with stdout and stderr combined."""

    shell: str = "bash"
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    def submit(self, step_name: str, command: str) -> ProcessHandle:
        """Spawn ``<shell> -c <command>`` without waiting for it."""
        env_vars = os.environ.copy()
        if self.env:
            env_vars.update(self.env)
        LOGGER.debug("Starting step %s: %s", step_name, command)
        try:
            process = subprocess.Popen(  # noqa: S603
                [self.shell, "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=str(self.cwd) if self.cwd is not None else None,
                env=env_vars,
            )
        except OSError as exc:
            raise CommandFailedError(step_name, None, f"{self.shell}: {exc}") from exc
        return ProcessHandle(step_name=step_name, command=command, process=process)

    def await_completion(self, handle: ProcessHandle) -> str:
        """Wait for the process behind *handle* and return its output."""
        if handle.process is None:
            raise CommandFailedError(handle.step_name, None, "process was never started")
        output, _ = handle.process.communicate()
        output = output or ""
        returncode = handle.process.returncode
        LOGGER.debug("Step %s finished with exit code %s", handle.step_name, returncode)
        if returncode != 0:
            raise CommandFailedError(handle.step_name, returncode, output)
        return output


__all__ = ["CommandFailedError", "ProcessHandle", "ProcessRunner", "SubprocessRunner"]
