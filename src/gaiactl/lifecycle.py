"""Lifecycle operations for a GaiaNet node.

Each operation is a fixed, ordered list of steps executed through
:class:`~gaiactl.sequence.CommandSequenceRunner`:

* ``install``: install-binary, profile reload, initialize, start
* ``stop``: stop
* ``upgrade``: stop, reinstall-with-upgrade-flag, initialize, start
* ``configure``: one ``update_<key>`` step per update, then initialize, start

Install and upgrade additionally search the ``start`` output for the node's
public URL. Configure validates the whole batch before any step is built.
A :class:`NodeLifecycle` holds no per-call state; callers own the instance and
must ensure only one operation runs against a node at a time.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .commands import CommandTemplates
from .errors import ExtractionError, OutputNotFoundError
from .extract import OutputExtractor
from .models import (
    PUBLIC_URL_FIELD,
    ConfigUpdate,
    LifecycleOperation,
    LifecycleResult,
    Step,
)
from .providers.process import ProcessRunner
from .sequence import CommandSequenceRunner, StepObserver
from .validation import ConfigValidator

LOGGER = logging.getLogger(__name__)

INSTALL_BINARY = "install-binary"
PROFILE_RELOAD = "profile reload"
INITIALIZE = "initialize"
START = "start"
STOP = "stop"
REINSTALL_UPGRADE = "reinstall-with-upgrade-flag"
UPDATE_PREFIX = "update_"

DEFAULT_PUBLIC_URL_MARKERS = ("https://", ".gaianet.xyz")


@dataclass(slots=True)
class NodeLifecycle:
    """Compose lifecycle step sequences on top of a process runner."""

    runner: ProcessRunner
    validator: ConfigValidator
    commands: CommandTemplates = CommandTemplates()
    public_url_markers: tuple[str, ...] = DEFAULT_PUBLIC_URL_MARKERS

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def install(self, *, observer: StepObserver | None = None) -> LifecycleResult:
        """Install, initialise and start the node, then report its public URL."""
        outputs = self._run(self.install_steps(), observer)
        return self._with_public_url(outputs)

    def stop(self, *, observer: StepObserver | None = None) -> LifecycleResult:
        """Stop the node."""
        return LifecycleResult(outputs=self._run(self.stop_steps(), observer))

    def upgrade(self, *, observer: StepObserver | None = None) -> LifecycleResult:
        """Stop, upgrade, re-initialise and restart the node."""
        outputs = self._run(self.upgrade_steps(), observer)
        return self._with_public_url(outputs)

    def configure(
        self,
        updates: Sequence[ConfigUpdate],
        *,
        observer: StepObserver | None = None,
    ) -> LifecycleResult:
        """Apply *updates* one key at a time, then re-initialise and restart."""
        steps = self.configure_steps(updates)
        return LifecycleResult(outputs=self._run(steps, observer))

    def run(
        self,
        operation: LifecycleOperation,
        updates: Sequence[ConfigUpdate] = (),
        *,
        observer: StepObserver | None = None,
    ) -> LifecycleResult:
        """Dispatch to the method implementing *operation*."""
        if operation is LifecycleOperation.INSTALL:
            return self.install(observer=observer)
        if operation is LifecycleOperation.STOP:
            return self.stop(observer=observer)
        if operation is LifecycleOperation.UPGRADE:
            return self.upgrade(observer=observer)
        return self.configure(updates, observer=observer)

    # ------------------------------------------------------------------
    # Step templates
    # ------------------------------------------------------------------
    def install_steps(self) -> list[Step]:
        """Return the install step sequence."""
        return [
            Step(INSTALL_BINARY, self.commands.install()),
            Step(PROFILE_RELOAD, self.commands.reload_profile()),
            Step(INITIALIZE, self.commands.init()),
            Step(START, self.commands.start()),
        ]

    def stop_steps(self) -> list[Step]:
        """Return the stop step sequence."""
        return [Step(STOP, self.commands.stop())]

    def upgrade_steps(self) -> list[Step]:
        """Return the upgrade step sequence."""
        return [
            Step(STOP, self.commands.stop()),
            Step(REINSTALL_UPGRADE, self.commands.upgrade()),
            Step(INITIALIZE, self.commands.init()),
            Step(START, self.commands.start()),
        ]

    def configure_steps(self, updates: Sequence[ConfigUpdate]) -> list[Step]:
        """Validate *updates* and return the configure step sequence."""
        self.validator.validate_batch(updates)
        steps = [
            Step(f"{UPDATE_PREFIX}{update.key}", self.commands.config(update.key, update.value))
            for update in updates
        ]
        steps.append(Step(INITIALIZE, self.commands.init()))
        steps.append(Step(START, self.commands.start()))
        return steps

    def plan(
        self,
        operation: LifecycleOperation,
        updates: Sequence[ConfigUpdate] = (),
    ) -> list[Step]:
        """Return the steps *operation* would run, without running them."""
        if operation is LifecycleOperation.INSTALL:
            return self.install_steps()
        if operation is LifecycleOperation.STOP:
            return self.stop_steps()
        if operation is LifecycleOperation.UPGRADE:
            return self.upgrade_steps()
        return self.configure_steps(updates)

    # ------------------------------------------------------------------
    def _run(self, steps: list[Step], observer: StepObserver | None) -> dict[str, str]:
        sequence = CommandSequenceRunner(runner=self.runner, observer=observer)
        return sequence.run(steps)

    def _with_public_url(self, outputs: dict[str, str]) -> LifecycleResult:
        extractor = OutputExtractor(self.public_url_markers)
        try:
            public_url = extractor.extract(outputs.get(START, ""))
        except OutputNotFoundError as exc:
            raise ExtractionError(START, exc.required_substrings) from exc
        LOGGER.info("Node public URL: %s", public_url)
        return LifecycleResult(outputs=outputs, derived={PUBLIC_URL_FIELD: public_url})


__all__ = [
    "DEFAULT_PUBLIC_URL_MARKERS",
    "INITIALIZE",
    "INSTALL_BINARY",
    "NodeLifecycle",
    "PROFILE_RELOAD",
    "REINSTALL_UPGRADE",
    "START",
    "STOP",
    "UPDATE_PREFIX",
]
