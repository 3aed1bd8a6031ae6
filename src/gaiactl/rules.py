"""Validation rules bound to recognised node configuration keys.

Each rule is an immutable value object with a ``check`` method that either
returns quietly or raises the matching :class:`~gaiactl.errors.ValidationError`
subclass. :func:`build_rule_table` assembles the closed key-to-rule mapping
once per process; nothing mutates it afterwards.
"""
from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from urllib.parse import urlsplit

from .errors import (
    InvalidEnumValueError,
    InvalidNumberError,
    InvalidUrlOrPathError,
    OutOfRangeError,
    PathNotFoundError,
)

# The node tool stores integer settings as unsigned 32-bit values.
MAX_UINT32 = 2**32 - 1
URL_SCHEMES = ("http", "https")

_UNSIGNED_RE = re.compile(r"\+?[0-9]+")


class ConfigKeyRule:
    """Base class for per-key validation policies."""

    def check(self, key: str, value: str) -> None:
        """Raise a ``ValidationError`` when *value* is not acceptable for *key*."""
        raise NotImplementedError

    def describe(self) -> str:
        """Return a short human readable summary of the rule."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class UrlOrLocalFile(ConfigKeyRule):
    """Accept an absolute http(s) URL or an existing file under ``base_dir``."""

    base_dir: Path

    def check(self, key: str, value: str) -> None:
        if value.startswith(tuple(f"{scheme}://" for scheme in URL_SCHEMES)):
            if not _is_absolute_url(value):
                raise InvalidUrlOrPathError(
                    key, value, f"Invalid URL structure for {key}: {value}"
                )
            return
        if not _is_file_under(Path(value), self.base_dir):
            raise InvalidUrlOrPathError(
                key,
                value,
                f"Invalid value for {key}: {value}. It should be a valid URL or a "
                f"local file under {self.base_dir}",
            )

    def describe(self) -> str:
        return f"http(s) URL or existing file under {self.base_dir}"


@dataclass(frozen=True, slots=True)
class NonNegativeInteger(ConfigKeyRule):
    """Accept a base-10 integer greater than or equal to zero."""

    def check(self, key: str, value: str) -> None:
        _parse_unsigned(key, value)

    def describe(self) -> str:
        return "integer >= 0"


@dataclass(frozen=True, slots=True)
class PositiveInteger(ConfigKeyRule):
    """Accept a base-10 integer strictly greater than zero."""

    def check(self, key: str, value: str) -> None:
        if _parse_unsigned(key, value) == 0:
            raise InvalidNumberError(key, value, f"{key} must be greater than 0")

    def describe(self) -> str:
        return "integer > 0"


@dataclass(frozen=True, slots=True)
class BoundedFloat(ConfigKeyRule):
    """Accept a finite float within ``[minimum, maximum]`` inclusive."""

    minimum: float
    maximum: float

    def check(self, key: str, value: str) -> None:
        if value != value.strip() or "_" in value:
            raise InvalidNumberError(key, value, f"Invalid number for {key}: {value}")
        try:
            number = float(value)
        except ValueError as exc:
            raise InvalidNumberError(
                key, value, f"Invalid number for {key}: {value}"
            ) from exc
        if math.isnan(number):
            raise InvalidNumberError(key, value, f"Invalid number for {key}: {value}")
        if number < self.minimum or number > self.maximum:
            raise OutOfRangeError(
                key,
                value,
                f"{key} must be between {self.minimum} and {self.maximum}",
            )

    def describe(self) -> str:
        return f"number in [{self.minimum}, {self.maximum}]"


@dataclass(frozen=True, slots=True)
class EnumOf(ConfigKeyRule):
    """Accept exactly one of a fixed set of strings."""

    values: frozenset[str]

    def check(self, key: str, value: str) -> None:
        if value not in self.values:
            choices = " or ".join(f"'{choice}'" for choice in sorted(self.values))
            raise InvalidEnumValueError(
                key, value, f"Invalid {key} value: {value}. Must be either {choices}"
            )

    def describe(self) -> str:
        return "one of " + ", ".join(sorted(self.values))


@dataclass(frozen=True, slots=True)
class ExistingPath(ConfigKeyRule):
    """Accept any filesystem path that exists."""

    def check(self, key: str, value: str) -> None:
        if not value or not Path(value).exists():
            raise PathNotFoundError(key, value, f"Invalid path for {key}: {value}")

    def describe(self) -> str:
        return "existing path"


@dataclass(frozen=True, slots=True)
class FreeText(ConfigKeyRule):
    """Accept any value."""

    def check(self, key: str, value: str) -> None:
        return None

    def describe(self) -> str:
        return "free text"


def build_rule_table(base_dir: Path) -> Mapping[str, ConfigKeyRule]:
    """Return the read-only table of recognised keys for a node rooted at *base_dir*."""
    url_or_file = UrlOrLocalFile(base_dir=base_dir)
    non_negative = NonNegativeInteger()
    free_text = FreeText()
    table: dict[str, ConfigKeyRule] = {
        "chat-url": url_or_file,
        "embedding-url": url_or_file,
        "snapshot": url_or_file,
        "chat-ctx-size": non_negative,
        "embedding-ctx-size": non_negative,
        "port": non_negative,
        "qdrant-limit": PositiveInteger(),
        "qdrant-score-threshold": BoundedFloat(minimum=0.0, maximum=1.0),
        "rag-policy": EnumOf(values=frozenset({"system-message", "last-user-message"})),
        "base": ExistingPath(),
        "prompt-template": free_text,
        "system-prompt": free_text,
        "rag-prompt": free_text,
        "reverse-prompt": free_text,
    }
    return MappingProxyType(table)


def _parse_unsigned(key: str, value: str) -> int:
    if not _UNSIGNED_RE.fullmatch(value):
        raise InvalidNumberError(key, value, f"Invalid number for {key}: {value}")
    number = int(value, 10)
    if number > MAX_UINT32:
        raise InvalidNumberError(key, value, f"Invalid number for {key}: {value}")
    return number


def _is_absolute_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
        _ = parts.port
    except ValueError:
        return False
    return parts.scheme in URL_SCHEMES and bool(parts.hostname)


def _is_file_under(candidate: Path, base_dir: Path) -> bool:
    if not candidate.is_file():
        return False
    try:
        resolved = candidate.resolve(strict=True)
        base = base_dir.expanduser().resolve()
    except OSError:
        return False
    return resolved.is_relative_to(base)


__all__ = [
    "BoundedFloat",
    "ConfigKeyRule",
    "EnumOf",
    "ExistingPath",
    "FreeText",
    "NonNegativeInteger",
    "PositiveInteger",
    "UrlOrLocalFile",
    "build_rule_table",
]
