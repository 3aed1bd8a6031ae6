"""Extraction of derived values from captured command output."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .errors import OutputNotFoundError


def extract_line(text: str, required_substrings: Sequence[str]) -> str:
    """Return the first line of *text* containing every required substring.

    The matching line is returned with surrounding whitespace removed. Lines
    are scanned top to bottom, so the earliest match wins.
    """
    for line in text.splitlines():
        if all(fragment in line for fragment in required_substrings):
            return line.strip()
    raise OutputNotFoundError(required_substrings)


@dataclass(frozen=True, slots=True)
class OutputExtractor:
    """Locate a derived value using a fixed set of required substrings."""

    required_substrings: tuple[str, ...]

    def extract(self, text: str) -> str:
        """Return the first qualifying line of *text*."""
        return extract_line(text, self.required_substrings)


__all__ = ["OutputExtractor", "extract_line"]
