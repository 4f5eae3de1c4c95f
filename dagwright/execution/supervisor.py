"""
Execution supervisor for Dagwright.

Walks an execution order one task at a time: checks that the task's
dependencies are satisfied, dispatches it to the capability bound to its
kind, runs its validation command, and on failure hands the task to the
recovery planner and runs the resulting sub-graph recursively.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from loguru import logger

from dagwright.core.exceptions import (
    CircularDependency,
    DagwrightError,
    DependencyUnmet,
    NoRecoveryPlan,
    RunCancelled,
    TaskFailed,
    UnknownTaskKind,
)
from dagwright.execution.capabilities import (
    ActionCapability,
    ActionKind,
    ActionRequest,
    ActionResult,
    ValidationCapability,
    ValidationRequest,
    ValidationResult,
)
from dagwright.planning.models import ExecutionGraph, PlanRequest, TaskKind, TaskNode, TaskStatus
from dagwright.planning.sequencer import sequence

if TYPE_CHECKING:
    from dagwright.execution.recovery import RecoveryPlanner

# =============================================================================
# EXECUTION LOG
# =============================================================================


@dataclass
class TaskAttempt:
    """One dispatch of one task node."""

    task_id: str
    description: str
    kind: TaskKind
    depth: int
    status: TaskStatus
    output: str = ""
    error: str | None = None
    validation_exit_code: int | None = None
    duration_seconds: float = 0.0
    recovery_of: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "task_id": self.task_id,
            "description": self.description,
            "kind": self.kind.value,
            "depth": self.depth,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "validation_exit_code": self.validation_exit_code,
            "duration_seconds": self.duration_seconds,
            "recovery_of": self.recovery_of,
            "started_at": self.started_at.isoformat(),
        }


@dataclass
class RecoveryRecord:
    """Diagnostic record of one recovery attempt."""

    task_id: str
    attempt: int
    depth: int
    outcome: str
    reason: str
    recovery_task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "task_id": self.task_id,
            "attempt": self.attempt,
            "depth": self.depth,
            "outcome": self.outcome,
            "reason": self.reason,
            "recovery_task_ids": self.recovery_task_ids,
        }


class ExecutionLog:
    """Every attempt and recovery of one run, across all recovery levels."""

    def __init__(self) -> None:
        self.attempts: list[TaskAttempt] = []
        self.recoveries: list[RecoveryRecord] = []

    def record(self, attempt: TaskAttempt) -> None:
        self.attempts.append(attempt)

    def record_recovery(self, record: RecoveryRecord) -> None:
        self.recoveries.append(record)

    @property
    def statuses(self) -> dict[str, TaskStatus]:
        """Final status per task ID, in dispatch order."""
        return {a.task_id: a.status for a in self.attempts}

    @property
    def failed_attempts(self) -> list[TaskAttempt]:
        return [a for a in self.attempts if not a.success]

    @property
    def dispatched(self) -> list[str]:
        """Task IDs in the order they were dispatched."""
        return [a.task_id for a in self.attempts]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "attempts": [a.to_dict() for a in self.attempts],
            "recoveries": [r.to_dict() for r in self.recoveries],
            "dispatched": self.dispatched,
            "statuses": {k: v.value for k, v in self.statuses.items()},
        }


TaskCallback = Callable[[TaskAttempt], None]


# =============================================================================
# SUPERVISOR
# =============================================================================


class ExecutionSupervisor:
    """
    Run an execution order with verify-then-recover discipline.

    Tasks run strictly one at a time. Every dispatch and every validation
    is awaited before the next task is considered, and cancellation is
    honoured only between tasks.

    Attributes:
        task_timeout: Timeout for a task's primary action in seconds.
        validation_timeout: Timeout for a validation command in seconds.
        max_recovery_depth: Deepest recovery sub-graph nesting allowed.

    Example:
        >>> supervisor = ExecutionSupervisor(content, shell, shell, recovery)
        >>> log = await supervisor.run(graph, order, request)
        >>> log.statuses
        {'task_000': <TaskStatus.COMPLETED: 'completed'>}
    """

    def __init__(
        self,
        content: ActionCapability,
        commands: ActionCapability,
        validator: ValidationCapability,
        recovery: "RecoveryPlanner | None" = None,
        task_timeout: float = 600,
        validation_timeout: float = 300,
        max_recovery_depth: int = 3,
    ):
        self.content = content
        self.commands = commands
        self.validator = validator
        self.recovery = recovery
        self.task_timeout = task_timeout
        self.validation_timeout = validation_timeout
        self.max_recovery_depth = max_recovery_depth
        self._cancel_requested = False
        self._callbacks: list[TaskCallback] = []
        self._handlers: dict[TaskKind, Callable[[TaskNode, PlanRequest], Awaitable[ActionResult]]] = {
            TaskKind.GENERATE: self._generate,
            TaskKind.MODIFY: self._modify,
            TaskKind.COMMAND: self._command,
            TaskKind.CHECKPOINT: self._checkpoint,
        }

    # =========================================================================
    # CALLBACKS AND CANCELLATION
    # =========================================================================

    def add_callback(self, callback: TaskCallback) -> None:
        """Add a callback invoked after every task attempt."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: TaskCallback) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _emit_callback(self, attempt: TaskAttempt) -> None:
        for callback in self._callbacks:
            try:
                callback(attempt)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

    def cancel(self) -> None:
        """Stop the current run before its next task; a running task finishes."""
        logger.info("Cancellation requested")
        self._cancel_requested = True

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(
        self,
        graph: ExecutionGraph,
        order: list[str],
        request: PlanRequest,
        depth: int = 0,
        log: ExecutionLog | None = None,
    ) -> ExecutionLog:
        """
        Execute every task of ``order``.

        Args:
            graph: Graph owning the tasks.
            order: Execution order from the sequencer.
            request: Original request, passed to capabilities and recovery.
            depth: Recovery nesting level of ``graph``.
            log: Log shared with enclosing runs (created when omitted).

        Returns:
            ExecutionLog of all attempts, including recovery sub-graphs.

        Raises:
            TaskFailed: A task failed and could not be recovered.
            DependencyUnmet: A task was reached before its dependencies.
            UnknownTaskKind: A task kind has no bound capability.
            RunCancelled: Cancellation was requested.
        """
        log = log if log is not None else ExecutionLog()
        if depth == 0:
            # A cancel request applies to the run in progress only
            self._cancel_requested = False

        unknown = [task_id for task_id in order if task_id not in graph]
        if unknown:
            raise DagwrightError(f"Execution order references unknown tasks: {unknown}")

        logger.info(f"Executing {len(order)} tasks at depth {depth}")

        for task_id in order:
            if self._cancel_requested:
                raise RunCancelled(f"Run cancelled before task {task_id}")

            node = graph.nodes[task_id]
            pending = [
                dep for dep in graph.dependencies_in_graph(task_id)
                if not graph.nodes[dep].is_satisfied
            ]
            if pending:
                logger.error(f"Task {task_id} reached with unmet dependencies {pending}")
                raise DependencyUnmet(task_id, pending)

            attempt = await self._execute_task(node, request, depth, graph.parent_task_id)
            log.record(attempt)
            self._emit_callback(attempt)

            if not attempt.success:
                await self._recover(node, attempt.error or "unknown error", request, depth, log)

        logger.info(f"Finished {len(order)} tasks at depth {depth}")
        return log

    async def _execute_task(
        self,
        node: TaskNode,
        request: PlanRequest,
        depth: int,
        recovery_of: str | None,
    ) -> TaskAttempt:
        """Dispatch one task, validate it and record the outcome on the node."""
        node.transition(TaskStatus.RUNNING)
        logger.info(f"Executing task {node.id} ({node.type.value}): {node.description}")
        start = time.monotonic()

        try:
            result = await asyncio.wait_for(
                self._dispatch(node, request),
                timeout=self.task_timeout,
            )
        except UnknownTaskKind:
            node.transition(TaskStatus.FAILED)
            raise
        except TimeoutError:
            logger.error(f"Task {node.id} timed out after {self.task_timeout}s")
            result = ActionResult(
                success=False,
                error_message=f"Task timed out after {self.task_timeout} seconds",
            )
        except Exception as e:
            logger.error(f"Task {node.id} raised: {e}")
            result = ActionResult(success=False, error_message=str(e))

        validation_exit_code = None
        if result.success and node.validation_command:
            validation = await self._validate(node)
            validation_exit_code = validation.exit_code
            if not validation.passed:
                detail = (validation.stderr or validation.stdout or "no output").strip()
                result = ActionResult(
                    success=False,
                    output=result.output,
                    error_message=(
                        f"Validation failed for task {node.id}: `{node.validation_command}` "
                        f"exited with status {validation.exit_code}: {detail}"
                    ),
                )

        status = TaskStatus.COMPLETED if result.success else TaskStatus.FAILED
        node.transition(status)

        error = None if result.success else (result.error_message or "Task reported failure")
        if error:
            logger.warning(f"Task {node.id} failed: {error}")
        else:
            logger.debug(f"Task {node.id} completed")

        return TaskAttempt(
            task_id=node.id,
            description=node.description,
            kind=node.type,
            depth=depth,
            status=status,
            output=result.output,
            error=error,
            validation_exit_code=validation_exit_code,
            duration_seconds=time.monotonic() - start,
            recovery_of=recovery_of,
        )

    async def _validate(self, node: TaskNode) -> ValidationResult:
        """Run the node's validation command; timeouts and errors count as failures."""
        command = node.validation_command or ""
        logger.debug(f"Verifying task {node.id} with: {command}")
        try:
            return await asyncio.wait_for(
                self.validator.validate(ValidationRequest(command=command)),
                timeout=self.validation_timeout,
            )
        except TimeoutError:
            return ValidationResult(
                exit_code=124,
                stderr=f"Validation timed out after {self.validation_timeout} seconds",
            )
        except Exception as e:
            return ValidationResult(exit_code=-1, stderr=str(e))

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def _dispatch(self, node: TaskNode, request: PlanRequest) -> ActionResult:
        handler = self._handlers.get(node.type)
        if handler is None:
            raise UnknownTaskKind(f"No capability bound to task kind {node.type!r}")
        return await handler(node, request)

    @staticmethod
    def _context(node: TaskNode, request: PlanRequest) -> str:
        return f"{request.summary()}\nCurrent task: {node.description}"

    async def _generate(self, node: TaskNode, request: PlanRequest) -> ActionResult:
        return await self.content.perform(
            ActionRequest(
                kind=ActionKind.GENERATE,
                path=node.file_path,
                context_summary=self._context(node, request),
            )
        )

    async def _modify(self, node: TaskNode, request: PlanRequest) -> ActionResult:
        return await self.content.perform(
            ActionRequest(
                kind=ActionKind.MODIFY,
                path=node.file_path,
                context_summary=self._context(node, request),
            )
        )

    async def _command(self, node: TaskNode, request: PlanRequest) -> ActionResult:
        # Command tasks without a literal command run their description.
        return await self.commands.perform(
            ActionRequest(
                kind=ActionKind.COMMAND,
                path=node.file_path,
                command=node.command or node.description,
                context_summary=self._context(node, request),
            )
        )

    async def _checkpoint(self, node: TaskNode, request: PlanRequest) -> ActionResult:
        return ActionResult(success=True, output=f"Checkpoint: {node.description}")

    # =========================================================================
    # RECOVERY
    # =========================================================================

    async def _recover(
        self,
        node: TaskNode,
        error: str,
        request: PlanRequest,
        depth: int,
        log: ExecutionLog,
    ) -> None:
        """
        Plan and run a recovery sub-graph for a failed task.

        Returns normally when the sub-graph succeeds, leaving the node
        failed but resolved so its dependents may run.

        Raises:
            TaskFailed: With the failed node's ID and the innermost error.
        """
        if self.recovery is None:
            raise TaskFailed(node.id, error)

        if depth >= self.max_recovery_depth:
            logger.error(f"Recovery depth limit {self.max_recovery_depth} reached at task {node.id}")
            log.record_recovery(
                RecoveryRecord(node.id, node.retry_count, depth, "depth_limit", error)
            )
            raise TaskFailed(node.id, error)

        node.retry_count += 1
        logger.warning(f"Task {node.id} failed, attempting recovery #{node.retry_count}")

        try:
            sub_graph = await self.recovery.recover(node, error, request, depth=depth)
            sub_order = sequence(sub_graph)
        except (NoRecoveryPlan, CircularDependency) as e:
            logger.error(f"No usable recovery plan for task {node.id}: {e}")
            log.record_recovery(
                RecoveryRecord(node.id, node.retry_count, depth, "no_plan", str(e))
            )
            raise TaskFailed(node.id, error) from e

        try:
            await self.run(sub_graph, sub_order, request, depth=depth + 1, log=log)
        except TaskFailed as e:
            log.record_recovery(
                RecoveryRecord(node.id, node.retry_count, depth, "failed", e.reason, sub_order)
            )
            raise TaskFailed(node.id, e.reason) from e

        node.resolved_by = list(sub_order)
        log.record_recovery(
            RecoveryRecord(node.id, node.retry_count, depth, "recovered", error, sub_order)
        )
        logger.info(f"Task {node.id} recovered by {len(sub_order)} tasks")
