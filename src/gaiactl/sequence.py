"""Sequential execution of named step commands."""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .errors import ProcessExecutionError
from .models import Step, StepOutput, StepRecord, StepStatus
from .providers.process import CommandFailedError, ProcessRunner

LOGGER = logging.getLogger(__name__)

StepObserver = Callable[[StepRecord], None]


@dataclass(slots=True)
class CommandSequenceRunner:
    """Run steps one after another, stopping at the first failure."""

    runner: ProcessRunner
    observer: StepObserver | None = None

    def run(self, steps: Sequence[Step]) -> StepOutput:
        """Execute *steps* in order and return their outputs keyed by step name.

        Each step is submitted only after the previous one has completed. When
        a step fails no further steps run and :class:`ProcessExecutionError`
        is raised; outputs gathered so far are discarded.
        """
        outputs: StepOutput = {}
        total = len(steps)
        for index, step in enumerate(steps, 1):
            LOGGER.info("Step %d/%d: %s", index, total, step.name)
            try:
                handle = self.runner.submit(step.name, step.command)
                output = self.runner.await_completion(handle)
            except CommandFailedError as exc:
                self._notify(StepRecord(index, total, step, StepStatus.FAILED, exc.output))
                LOGGER.error("Step %s failed: %s", step.name, exc)
                raise ProcessExecutionError(
                    step.name,
                    exc.output,
                    completed_steps=list(outputs),
                ) from exc
            outputs[step.name] = output
            self._notify(StepRecord(index, total, step, StepStatus.SUCCESS, output))
        return outputs

    def _notify(self, record: StepRecord) -> None:
        if self.observer is not None:
            self.observer(record)


__all__ = ["CommandSequenceRunner", "StepObserver"]
