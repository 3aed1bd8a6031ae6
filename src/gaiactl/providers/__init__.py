"""Provider interfaces for gaiactl."""
from __future__ import annotations

from .process import CommandFailedError, ProcessHandle, ProcessRunner, SubprocessRunner

__all__ = [
    "CommandFailedError",
    "ProcessHandle",
    "ProcessRunner",
    "SubprocessRunner",
]
