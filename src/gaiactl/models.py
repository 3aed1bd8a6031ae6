"""Data models shared by the lifecycle engine."""
from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

# Ordered mapping of step name to captured output; insertion order is execution order.
StepOutput = dict[str, str]

PUBLIC_URL_FIELD = "public_url"


class LifecycleOperation(str, Enum):
    """Lifecycle operations exposed to callers."""

    INSTALL = "install"
    STOP = "stop"
    UPGRADE = "upgrade"
    CONFIGURE = "configure"


class StepStatus(str, Enum):
    """Outcome of a single executed step."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Step:
    """A single named shell invocation."""

    name: str
    command: str


@dataclass(frozen=True, slots=True)
class ConfigUpdate:
    """One configuration key/value pair supplied by a caller."""

    key: str
    value: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> ConfigUpdate:
        """Build an update from a ``{"key": ..., "value": ...}`` mapping."""
        key = data.get("key")
        value = data.get("value")
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValueError("Config updates require string 'key' and 'value' fields.")
        return cls(key=key, value=value)

    @classmethod
    def parse_assignment(cls, text: str) -> ConfigUpdate:
        """Parse a ``key=value`` assignment as typed on the command line."""
        key, sep, value = text.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {text!r}.")
        return cls(key=key, value=value)


@dataclass(frozen=True, slots=True)
class StepRecord:
    """Notification emitted after each executed step."""

    index: int
    total: int
    step: Step
    status: StepStatus
    output: str


@dataclass(slots=True)
class LifecycleResult:
    """Outputs of a completed lifecycle operation."""

    outputs: StepOutput = field(default_factory=dict)
    derived: dict[str, str] = field(default_factory=dict)

    @property
    def public_url(self) -> str | None:
        """Return the extracted public URL when the operation produced one."""
        return self.derived.get(PUBLIC_URL_FIELD)

    def to_payload(self) -> dict[str, str]:
        """Return step outputs merged with derived fields, in step order."""
        payload = dict(self.outputs)
        payload.update(self.derived)
        return payload

    def to_json(self) -> str:
        """Serialise :meth:`to_payload` as JSON."""
        return json.dumps(self.to_payload())


__all__ = [
    "ConfigUpdate",
    "LifecycleOperation",
    "LifecycleResult",
    "PUBLIC_URL_FIELD",
    "Step",
    "StepOutput",
    "StepRecord",
    "StepStatus",
]
