"""Wiring of configuration, locks, logging and the lifecycle engine."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .config import AppConfig
from .errors import GaiactlError
from .lifecycle import NodeLifecycle
from .locking import LockManager
from .logging import OperationScope, StructuredLogger
from .models import ConfigUpdate, LifecycleOperation, LifecycleResult, StepRecord
from .providers.process import ProcessRunner, SubprocessRunner
from .sequence import StepObserver
from .validation import ConfigValidator


@dataclass
class NodeRuntime:
    """Aggregated runtime objects shared by the CLI and job handlers."""

    config: AppConfig
    lifecycle: NodeLifecycle
    locks: LockManager
    logger: StructuredLogger

    def execute(
        self,
        operation: LifecycleOperation,
        updates: Sequence[ConfigUpdate] = (),
        *,
        command: str | None = None,
        args: Mapping[str, object] | None = None,
    ) -> LifecycleResult:
        """Run *operation* under the node lock and record it in the operations log.

        Errors are recorded on the operation scope and re-raised unchanged.
        """
        node = self.config.node_name
        with self.logger.operation(
            command or operation.value,
            args=args,
            target={"kind": "node", "name": node},
        ) as op:
            with self.locks.node_lock(node) as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                try:
                    result = self.lifecycle.run(
                        operation,
                        updates,
                        observer=_step_recorder(op),
                    )
                except GaiactlError as exc:
                    op.error(str(exc), context=exc.to_dict())
                    raise
            context: dict[str, object] = {"steps": list(result.outputs)}
            context.update(result.derived)
            op.success(
                f"Node {operation.value} completed.",
                changed=len(result.outputs),
                context=context,
            )
            return result


def _step_recorder(op: OperationScope) -> StepObserver:
    def record(step: StepRecord) -> None:
        detail = f"{step.index}/{step.total}"
        op.add_step(step.step.name, status=step.status.value, detail=detail)

    return record


def build_runtime(config: AppConfig, *, runner: ProcessRunner | None = None) -> NodeRuntime:
    """Construct a :class:`NodeRuntime` from resolved configuration."""
    process_runner = runner or SubprocessRunner(shell=config.node.shell)
    lifecycle = NodeLifecycle(
        runner=process_runner,
        validator=ConfigValidator.for_base_dir(config.base_dir),
        commands=config.node.command_templates(),
        public_url_markers=config.public_url.markers,
    )
    return NodeRuntime(
        config=config,
        lifecycle=lifecycle,
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
    )


__all__ = ["NodeRuntime", "build_runtime"]
