"""Main Dagwright orchestrator - coordinates planning and supervised execution.

This module provides the primary interface for running Dagwright: it wires
the graph builder, sequencer and critical-path analyzer into a plan, then
hands the plan to the execution supervisor with the configured
capabilities.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from dagwright.core.config import Settings, get_settings
from dagwright.core.exceptions import (
    CircularDependency,
    DependencyUnmet,
    PlanningFailed,
    RunCancelled,
    TaskFailed,
    UnknownTaskKind,
)
from dagwright.execution.capabilities import (
    ActionCapability,
    ContentCapability,
    DryRunCapability,
    ShellCapability,
    ValidationCapability,
)
from dagwright.execution.recovery import RecoveryPlanner
from dagwright.execution.supervisor import ExecutionLog, ExecutionSupervisor, TaskCallback
from dagwright.planning.builder import GraphBuilder
from dagwright.planning.critical_path import critical_path
from dagwright.planning.models import Plan, PlanRequest
from dagwright.planning.sequencer import sequence
from dagwright.planning.synthesis import AnthropicSynthesizer, SynthesisCapability

# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================


class Dagwright:
    """
    Main Dagwright orchestrator class.

    Coordinates the pipeline from request to verified changes:
    1. Classify the request and build a task graph
    2. Sequence the graph and compute its critical path
    3. Dispatch tasks one at a time, validating each
    4. Re-plan and run recovery sub-graphs for failed tasks

    Example:
        >>> dagwright = Dagwright(workspace="./my-project")
        >>> result = await dagwright.execute("git pull then npm install")
        >>> print(result["status"])
        'completed'

        >>> # Plan only
        >>> plan = await dagwright.plan("Add a /health endpoint")
        >>> print(plan.format())
    """

    IGNORED_DIRS = {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
        "env",
        "__pycache__",
        "node_modules",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        ".tox",
        "dist",
        "build",
    }

    def __init__(
        self,
        settings: Settings | None = None,
        workspace: str | Path | None = None,
        synthesizer: SynthesisCapability | None = None,
        content: ActionCapability | None = None,
        commands: ActionCapability | None = None,
        validator: ValidationCapability | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Optional settings override. Uses default if not provided.
            workspace: Optional workspace directory. Uses DAGWRIGHT_WORKING_DIR
                if not provided.
            synthesizer: Optional synthesis capability. An Anthropic-backed one
                is created when an API key is configured.
            content: Optional capability for generate/modify tasks.
            commands: Optional capability for command tasks.
            validator: Optional capability for validation commands.
            dry_run: Record every action instead of performing it.
        """
        self.settings = settings or get_settings()
        self.workspace = Path(workspace or self.settings.dagwright_working_dir).resolve()
        self.dry_run = dry_run

        self._configure_logging()

        if synthesizer is None and self.settings.synthesis_enabled:
            synthesizer = AnthropicSynthesizer(self.settings)
        self.synthesizer = synthesizer

        if dry_run:
            recorder = DryRunCapability()
            content = content or recorder
            commands = commands or recorder
            validator = validator or recorder
        else:
            shell = ShellCapability(self.workspace, self.settings.dagwright_output_limit)
            llm = synthesizer if hasattr(synthesizer, "complete") else None
            content = content or ContentCapability(llm, self.workspace)
            commands = commands or shell
            validator = validator or shell

        self.builder = GraphBuilder(
            synthesizer=synthesizer,
            synthesis_timeout=self.settings.dagwright_synthesis_timeout,
        )
        self.recovery = RecoveryPlanner(self.builder)
        self.supervisor = ExecutionSupervisor(
            content=content,
            commands=commands,
            validator=validator,
            recovery=self.recovery,
            task_timeout=self.settings.dagwright_task_timeout,
            validation_timeout=self.settings.dagwright_validation_timeout,
            max_recovery_depth=self.settings.dagwright_max_recovery_depth,
        )

    def _configure_logging(self) -> None:
        """Configure loguru based on settings."""
        logger.remove()  # Remove default handler

        log_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

        level = "DEBUG" if self.settings.dagwright_debug else self.settings.dagwright_log_level
        logger.add(
            lambda msg: sys.stderr.write(msg),
            level=level,
            format=log_format,
            colorize=True,
        )

        if self.settings.dagwright_log_file:
            Path(self.settings.dagwright_log_file).parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                self.settings.dagwright_log_file,
                rotation="1 day",
                retention="7 days",
                level=level,
                format=log_format,
            )

    # =========================================================================
    # CONTEXT
    # =========================================================================

    def discover_files(self, limit: int = 200) -> list[str]:
        """
        List workspace files as known context for planning.

        Version control, virtualenv, cache and dependency directories are
        skipped.

        Args:
            limit: Maximum number of files returned.

        Returns:
            Sorted workspace-relative POSIX paths.
        """
        if not self.workspace.is_dir():
            return []

        files: list[str] = []
        for root, dirs, names in os.walk(self.workspace):
            dirs[:] = sorted(d for d in dirs if d not in self.IGNORED_DIRS)
            for name in sorted(names):
                files.append((Path(root) / name).relative_to(self.workspace).as_posix())
                if len(files) >= limit:
                    return files
        return files

    def _request(
        self,
        query: str,
        project_hint: str | None,
        active_file: str | None,
        known_files: list[str] | None,
    ) -> PlanRequest:
        return PlanRequest(
            query=query,
            project_hint=project_hint,
            active_file=active_file,
            known_files=known_files if known_files is not None else self.discover_files(),
        )

    # =========================================================================
    # PRIMARY INTERFACE
    # =========================================================================

    async def plan(
        self,
        query: str,
        project_hint: str | None = None,
        active_file: str | None = None,
        known_files: list[str] | None = None,
    ) -> Plan:
        """
        Build, sequence and analyse a plan without executing it.

        Args:
            query: Natural-language engineering request.
            project_hint: Optional project type hint.
            active_file: File the user is focused on.
            known_files: Known workspace files (discovered if omitted).

        Returns:
            Plan with graph, execution order and critical path.

        Raises:
            PlanningFailed: If no tasks could be produced.
            CircularDependency: If the graph contains a cycle.
        """
        return await self._plan(self._request(query, project_hint, active_file, known_files))

    async def _plan(self, request: PlanRequest) -> Plan:
        logger.info(f"Planning request: {request.query[:100]}")
        graph = await self.builder.build_graph(request)
        order = sequence(graph)
        path = critical_path(graph, order)
        plan = Plan(graph, order, path, graph.strategy, request.project_hint)
        logger.debug(f"Plan:\n{plan.format()}")
        return plan

    async def execute(
        self,
        query: str,
        project_hint: str | None = None,
        active_file: str | None = None,
        known_files: list[str] | None = None,
        on_attempt: TaskCallback | None = None,
    ) -> dict[str, Any]:
        """
        Plan and execute a request.

        Planning and sequencing failures end the run before any task is
        dispatched. Execution failures are reported with the ID of the
        top-level task that could not be recovered.

        Args:
            query: Natural-language engineering request.
            project_hint: Optional project type hint.
            active_file: File the user is focused on.
            known_files: Known workspace files (discovered if omitted).
            on_attempt: Optional callback invoked after every task attempt.

        Returns:
            Result dict with ``status`` (completed, failed or cancelled),
            ``error``, ``failed_task_id``, ``plan`` and ``log``.

        Example:
            >>> result = await dagwright.execute("create hello.py and run it")
            >>> result["plan"]["order"]
            ['task_000', 'task_001']
        """
        started_at = datetime.now(timezone.utc)
        request = self._request(query, project_hint, active_file, known_files)

        logger.info(f"Starting Dagwright execution in {self.workspace}")
        if self.dry_run:
            logger.info("Dry run: actions will be recorded, not performed")

        result: dict[str, Any] = {
            "status": "completed",
            "query": query,
            "workspace": str(self.workspace),
            "dry_run": self.dry_run,
            "error": None,
            "failed_task_id": None,
            "plan": None,
            "log": None,
            "started_at": started_at.isoformat(),
        }

        try:
            plan = await self._plan(request)
        except (PlanningFailed, CircularDependency) as e:
            logger.error(f"Planning failed: {e}")
            result.update(status="failed", error=str(e))
            return self._finish(result, started_at)

        result["plan"] = plan.to_dict()
        log = ExecutionLog()
        if on_attempt is not None:
            self.supervisor.add_callback(on_attempt)

        try:
            await self.supervisor.run(plan.graph, plan.order, request, log=log)
        except RunCancelled as e:
            logger.warning(str(e))
            result.update(status="cancelled", error=str(e))
        except TaskFailed as e:
            logger.error(f"Execution failed: {e}")
            result.update(status="failed", error=str(e), failed_task_id=e.task_id)
        except DependencyUnmet as e:
            logger.error(f"Execution failed: {e}")
            result.update(status="failed", error=str(e), failed_task_id=e.task_id)
        except UnknownTaskKind as e:
            logger.error(f"Execution failed: {e}")
            result.update(status="failed", error=str(e))
        finally:
            if on_attempt is not None:
                self.supervisor.remove_callback(on_attempt)

        # Graph statuses after execution, including resolved failures
        result["plan"] = plan.to_dict()
        result["log"] = log.to_dict()
        logger.info(f"Execution finished with status: {result['status']}")
        return self._finish(result, started_at)

    @staticmethod
    def _finish(result: dict[str, Any], started_at: datetime) -> dict[str, Any]:
        completed_at = datetime.now(timezone.utc)
        result["completed_at"] = completed_at.isoformat()
        result["duration_seconds"] = (completed_at - started_at).total_seconds()
        return result

    def cancel(self) -> None:
        """Request cancellation; the run stops before its next task."""
        self.supervisor.cancel()
