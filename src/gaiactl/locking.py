"""File-based locks serialising lifecycle operations per node."""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

POLL_INTERVAL = 0.05


class LockTimeoutError(RuntimeError):
    """Raised when a lock cannot be acquired within the timeout."""


@dataclass(slots=True)
class LockHandle:
    """Details about an acquired lock."""

    path: Path
    wait_ms: int


class LockManager:
    """Acquire exclusive ``flock`` locks under the runtime directory."""

    def __init__(self, runtime_dir: Path, default_timeout: float = 30.0) -> None:
        """Store the lock directory and default acquisition timeout."""
        self.runtime_dir = runtime_dir.expanduser()
        self.default_timeout = default_timeout

    def lock_path(self, node: str) -> Path:
        """Return the lockfile path for *node*."""
        safe = node.replace("/", "-")
        return self.runtime_dir / f"{safe}.lock"

    @contextmanager
    def node_lock(self, node: str, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the exclusive lock for *node* for the duration of the block.

        The lockfile is left in place after release so the metadata of the
        last holder remains available for diagnostics.
        """
        path = self.lock_path(node)
        path.parent.mkdir(parents=True, exist_ok=True)
        limit = self.default_timeout if timeout is None else timeout
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            wait_ms = _acquire(fd, path, limit)
            _write_metadata(fd, path, node)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


def _acquire(fd: int, path: Path, timeout: float) -> int:
    started = time.monotonic()
    deadline = started + timeout
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            if time.monotonic() >= deadline:
                raise LockTimeoutError(
                    f"Timed out after {timeout:.1f}s waiting for lock {path}"
                ) from None
            time.sleep(POLL_INTERVAL)
            continue
        return int((time.monotonic() - started) * 1000)


def _write_metadata(fd: int, path: Path, node: str) -> None:
    payload = {
        "pid": os.getpid(),
        "node": node,
        "path": str(path),
        "acquired_at": datetime.now(UTC).isoformat(timespec="seconds"),
    }
    os.ftruncate(fd, 0)
    os.lseek(fd, 0, os.SEEK_SET)
    os.write(fd, json.dumps(payload).encode("utf-8"))


__all__ = ["LockHandle", "LockManager", "LockTimeoutError"]
