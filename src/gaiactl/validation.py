"""Validation of node configuration updates."""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from .errors import DuplicateKeyError, UnknownKeyError
from .models import ConfigUpdate
from .rules import ConfigKeyRule, build_rule_table

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConfigValidator:
    """Check configuration updates against a key-to-rule table."""

    rules: Mapping[str, ConfigKeyRule]

    @classmethod
    def for_base_dir(cls, base_dir: Path) -> ConfigValidator:
        """Return a validator using the standard rule table for *base_dir*."""
        return cls(rules=build_rule_table(base_dir))

    def rule_for(self, key: str) -> ConfigKeyRule:
        """Return the rule bound to *key*, raising ``UnknownKeyError`` otherwise."""
        try:
            return self.rules[key]
        except KeyError:
            raise UnknownKeyError(key) from None

    def validate(self, key: str, value: str) -> None:
        """Validate a single key/value pair."""
        rule = self.rule_for(key)
        rule.check(key, value)

    def validate_batch(self, updates: Sequence[ConfigUpdate]) -> None:
        """Validate *updates* in order, stopping at the first failure.

        The batch is accepted only when every pair passes; the first error
        encountered is raised and the remaining pairs are not examined.
        """
        seen: set[str] = set()
        for update in updates:
            if update.key in seen:
                raise DuplicateKeyError(update.key, update.value)
            seen.add(update.key)
            self.validate(update.key, update.value)
        LOGGER.debug("Validated %d config update(s).", len(updates))


__all__ = ["ConfigValidator"]
