"""Job handlers invoked by the job-dispatch layer.

Jobs are numbered the way the node service registers them:

====  ==========  ===========================================
id    operation   payload
====  ==========  ===========================================
1     install     ignored
2     stop        ignored
3     upgrade     ignored
4     configure   JSON array of ``{"key": ..., "value": ...}``
====  ==========  ===========================================

Every handler returns a JSON string. Success maps step names to captured
output (plus ``public_url`` for install and upgrade); failure is
``{"error": {"type": ..., ...}}`` with the error's structured fields.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from .errors import GaiactlError
from .locking import LockTimeoutError
from .models import ConfigUpdate, LifecycleOperation
from .runtime import NodeRuntime

LOGGER = logging.getLogger(__name__)

JobPayload = bytes | str

JOB_OPERATIONS: Mapping[int, LifecycleOperation] = {
    1: LifecycleOperation.INSTALL,
    2: LifecycleOperation.STOP,
    3: LifecycleOperation.UPGRADE,
    4: LifecycleOperation.CONFIGURE,
}


class InvalidPayloadError(GaiactlError):
    """Raised when a job payload cannot be decoded."""

    code = "invalid_payload"


def parse_config_updates(payload: JobPayload) -> list[ConfigUpdate]:
    """Decode a configure payload into an ordered list of updates."""
    text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    try:
        raw = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayloadError(f"Config updates must be valid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise InvalidPayloadError("Config updates must be a JSON array.")
    updates: list[ConfigUpdate] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise InvalidPayloadError(f"Config update #{index} must be an object.")
        try:
            updates.append(ConfigUpdate.from_mapping(item))
        except ValueError as exc:
            raise InvalidPayloadError(f"Config update #{index}: {exc}") from exc
    return updates


def error_payload(exc: GaiactlError | LockTimeoutError) -> str:
    """Serialise *exc* as a job failure response."""
    if isinstance(exc, GaiactlError):
        body = exc.to_dict()
    else:
        body = {"type": "lock_timeout", "message": str(exc)}
    return json.dumps({"error": body})


@dataclass(slots=True)
class JobDispatcher:
    """Route job ids to lifecycle operations on a runtime."""

    runtime: NodeRuntime

    def run_install(self, data: JobPayload = b"") -> str:
        """Install and start the node."""
        return self._execute(LifecycleOperation.INSTALL)

    def run_stop(self, data: JobPayload = b"") -> str:
        """Stop the node."""
        return self._execute(LifecycleOperation.STOP)

    def run_upgrade(self, data: JobPayload = b"") -> str:
        """Upgrade and restart the node."""
        return self._execute(LifecycleOperation.UPGRADE)

    def run_configure(self, config_updates: JobPayload) -> str:
        """Apply configuration updates and restart the node."""
        try:
            updates = parse_config_updates(config_updates)
        except InvalidPayloadError as exc:
            LOGGER.warning("Rejected configure job payload: %s", exc)
            return error_payload(exc)
        return self._execute(LifecycleOperation.CONFIGURE, updates)

    def dispatch(self, job_id: int, payload: JobPayload = b"") -> str:
        """Run the handler registered for *job_id*."""
        try:
            operation = JOB_OPERATIONS[job_id]
        except KeyError:
            raise KeyError(f"Unknown job id: {job_id}") from None
        handlers: Mapping[LifecycleOperation, Callable[[JobPayload], str]] = {
            LifecycleOperation.INSTALL: self.run_install,
            LifecycleOperation.STOP: self.run_stop,
            LifecycleOperation.UPGRADE: self.run_upgrade,
            LifecycleOperation.CONFIGURE: self.run_configure,
        }
        return handlers[operation](payload)

    def _execute(
        self,
        operation: LifecycleOperation,
        updates: list[ConfigUpdate] | None = None,
    ) -> str:
        args: dict[str, object] = {}
        if updates is not None:
            args["keys"] = [update.key for update in updates]
        try:
            result = self.runtime.execute(
                operation,
                updates or (),
                command=f"job {operation.value}",
                args=args,
            )
        except (GaiactlError, LockTimeoutError) as exc:
            LOGGER.error("Job %s failed: %s", operation.value, exc)
            return error_payload(exc)
        return result.to_json()


__all__ = [
    "InvalidPayloadError",
    "JOB_OPERATIONS",
    "JobDispatcher",
    "error_payload",
    "parse_config_updates",
]
