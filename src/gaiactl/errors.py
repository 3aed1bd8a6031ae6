"""Error taxonomy for node lifecycle operations.

Every failure a lifecycle operation can surface is one of the classes below.
Each keeps its diagnostic payload as attributes (step name, offending key,
searched substrings) and can render itself as a JSON-safe mapping through
:meth:`GaiactlError.to_dict` so callers never need to parse messages.
"""
from __future__ import annotations

from collections.abc import Sequence


class GaiactlError(RuntimeError):
    """Base class for errors raised by gaiactl."""

    code = "error"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation of the error."""
        return {"type": self.code, "message": str(self)}


class ProcessExecutionError(GaiactlError):
    """Raised when a step's external command fails."""

    code = "process_execution"

    def __init__(
        self,
        step_name: str,
        diagnostic: str,
        *,
        completed_steps: Sequence[str] = (),
    ) -> None:
        """Record the failing step and the output it produced."""
        self.step_name = step_name
        self.diagnostic = diagnostic
        self.completed_steps = tuple(completed_steps)
        summary = diagnostic.strip() or "no output"
        super().__init__(f"Step '{step_name}' failed: {summary}")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation of the error."""
        payload = super().to_dict()
        payload.update(
            {
                "step_name": self.step_name,
                "diagnostic": self.diagnostic,
                "completed_steps": list(self.completed_steps),
            }
        )
        return payload


class ExtractionError(GaiactlError):
    """Raised when every command succeeded but a derived value was not found."""

    code = "extraction"

    def __init__(self, step_name: str, required_substrings: Sequence[str]) -> None:
        """Record which step was searched and for what."""
        self.step_name = step_name
        self.required_substrings = tuple(required_substrings)
        wanted = ", ".join(repr(item) for item in self.required_substrings)
        super().__init__(f"No line in '{step_name}' output contains all of: {wanted}")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation of the error."""
        payload = super().to_dict()
        payload.update(
            {
                "step_name": self.step_name,
                "required_substrings": list(self.required_substrings),
            }
        )
        return payload


class OutputNotFoundError(GaiactlError):
    """Raised by the output extractor when no line qualifies."""

    code = "output_not_found"

    def __init__(self, required_substrings: Sequence[str]) -> None:
        """Record the substrings that were searched for."""
        self.required_substrings = tuple(required_substrings)
        wanted = ", ".join(repr(item) for item in self.required_substrings)
        super().__init__(f"No line contains all of: {wanted}")


class ValidationError(GaiactlError):
    """Base class for configuration update validation failures."""

    code = "validation"

    def __init__(self, key: str, value: str | None, message: str) -> None:
        """Record the offending pair alongside a human readable message."""
        self.key = key
        self.value = value
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation of the error."""
        payload = super().to_dict()
        payload.update({"key": self.key, "value": self.value})
        return payload


class UnknownKeyError(ValidationError):
    """The configuration key is not recognised."""

    code = "unknown_key"

    def __init__(self, key: str, value: str | None = None) -> None:
        """Build the error for an unrecognised *key*."""
        super().__init__(key, value, f"Unknown config key: {key}")


class DuplicateKeyError(ValidationError):
    """The same key appears more than once in a batch."""

    code = "duplicate_key"

    def __init__(self, key: str, value: str | None = None) -> None:
        """Build the error for a repeated *key*."""
        super().__init__(key, value, f"Config key '{key}' appears more than once in the batch.")


class InvalidUrlOrPathError(ValidationError):
    """Value is neither an absolute URL nor a file under the node base directory."""

    code = "invalid_url_or_path"


class InvalidNumberError(ValidationError):
    """Value does not parse as the required kind of number."""

    code = "invalid_number"


class OutOfRangeError(ValidationError):
    """Numeric value falls outside its permitted range."""

    code = "out_of_range"


class InvalidEnumValueError(ValidationError):
    """Value is not one of the permitted choices."""

    code = "invalid_enum_value"


class PathNotFoundError(ValidationError):
    """Value names a filesystem path that does not exist."""

    code = "path_not_found"


__all__ = [
    "DuplicateKeyError",
    "ExtractionError",
    "GaiactlError",
    "InvalidEnumValueError",
    "InvalidNumberError",
    "InvalidUrlOrPathError",
    "OutOfRangeError",
    "OutputNotFoundError",
    "PathNotFoundError",
    "ProcessExecutionError",
    "UnknownKeyError",
    "ValidationError",
]
