"""Pydantic models for task planning.

This module defines the data structures shared by the planner and the
execution supervisor: task kinds and statuses, the task node itself,
the execution graph that owns a set of nodes, and the plan request
coming in from callers.
"""

from enum import Enum
from pathlib import PurePosixPath
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationInfo,
    field_validator,
)

from dagwright.core.exceptions import InvalidTransition, UnknownTaskKind

# =============================================================================
# ENUMS
# =============================================================================


class TaskKind(str, Enum):
    """Kind of work a task performs; selects the execution capability."""

    GENERATE = "generate"
    MODIFY = "modify"
    COMMAND = "command"
    CHECKPOINT = "checkpoint"

    @classmethod
    def parse(cls, value: str | None, file_exists: bool = False) -> "TaskKind":
        """Map a free-form type tag onto a task kind.

        Args:
            value: Tag as produced by a template or by plan synthesis.
            file_exists: Whether the task's target file is already known,
                used to split generic "code" tags into generate/modify.

        Returns:
            The matching TaskKind.

        Raises:
            UnknownTaskKind: If the tag has no known mapping.
        """
        tag = (value or "code").strip().lower().replace("_", "-")
        if tag in _CODE_ALIASES:
            return cls.MODIFY if file_exists else cls.GENERATE
        if tag in _COMMAND_ALIASES:
            return cls.COMMAND
        if tag in _CHECKPOINT_ALIASES:
            return cls.CHECKPOINT
        try:
            return cls(tag)
        except ValueError:
            raise UnknownTaskKind(f"Unknown task type: {value!r}") from None


_CODE_ALIASES = {"code", "code-change", "codechange", "file", "edit"}
_COMMAND_ALIASES = {"shell", "shell-command", "terminal", "cmd", "run"}
_CHECKPOINT_ALIASES = {"analysis", "review", "verify", "verification", "note"}


class TaskStatus(str, Enum):
    """Execution status of a task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


class PlanStrategy(str, Enum):
    """Generation strategy chosen for a request."""

    SCRIPT = "script"
    STRESS_TEST = "stress_test"
    SIMPLE_MODIFICATION = "simple_modification"
    COMPLEX_MODIFICATION = "complex_modification"
    COMMAND_SEQUENCE = "command_sequence"
    SCAFFOLD = "scaffold"
    OPEN_ENDED = "open_ended"

    @property
    def uses_synthesis(self) -> bool:
        """Whether this strategy delegates to the synthesis capability."""
        return self in (PlanStrategy.COMPLEX_MODIFICATION, PlanStrategy.OPEN_ENDED)


# =============================================================================
# TASK NODE
# =============================================================================


class TaskNode(BaseModel):
    """Atomic, schedulable unit of work.

    Example:
        >>> node = TaskNode(
        ...     id="task_001",
        ...     description="Run the test suite",
        ...     type=TaskKind.COMMAND,
        ...     command="pytest -q",
        ...     dependencies=["task_000"],
        ... )
        >>> node.is_satisfied
        False
    """

    model_config = ConfigDict(frozen=False, validate_assignment=False)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique task identifier within its graph",
    )
    description: str = Field(
        ...,
        description="Human-readable intent",
    )
    type: TaskKind = Field(
        default=TaskKind.CHECKPOINT,
        description="Task kind, used as the dispatch key",
    )
    file_path: str | None = Field(
        default=None,
        description="Target file for generate/modify tasks",
    )
    command: str | None = Field(
        default=None,
        description="Literal shell command for command tasks",
    )
    dependencies: list[str] = Field(
        default_factory=list,
        description="Task IDs that must complete first",
    )
    validation_command: str | None = Field(
        default=None,
        description="Command whose zero exit status proves success",
    )
    status: TaskStatus = Field(
        default=TaskStatus.PENDING,
        description="Execution status",
    )
    retry_count: int = Field(
        default=0,
        ge=0,
        description="Recovery attempts already made for this node",
    )
    resolved_by: list[str] = Field(
        default_factory=list,
        description="IDs of recovery tasks that discharged a failure",
    )

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Reject blank descriptions."""
        v = v.strip()
        if not v:
            raise ValueError("description must not be empty")
        return v

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v: list[str], info: ValidationInfo) -> list[str]:
        """Reject duplicate and self-referencing dependencies."""
        if len(set(v)) != len(v):
            raise ValueError(f"duplicate dependencies: {v}")
        node_id = info.data.get("id")
        if node_id is not None and node_id in v:
            raise ValueError(f"task {node_id} depends on itself")
        return v

    def transition(self, status: TaskStatus) -> None:
        """Move to a new status, enforcing the monotonic lifecycle.

        Raises:
            InvalidTransition: If the move is not pending -> running ->
                completed/failed.
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Task {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    @property
    def is_satisfied(self) -> bool:
        """Completed, or failed and then resolved by a recovery sub-graph."""
        if self.status == TaskStatus.COMPLETED:
            return True
        return self.status == TaskStatus.FAILED and bool(self.resolved_by)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json")


# =============================================================================
# EXECUTION GRAPH
# =============================================================================


class ExecutionGraph(BaseModel):
    """Set of task nodes for one planning cycle.

    Ids handed out by ``next_id`` are scoped to the graph: a recovery
    graph gets a scope derived from the failed task so its ids can never
    alias the parent's.

    Example:
        >>> graph = ExecutionGraph()
        >>> graph.next_id()
        'task_000'
        >>> ExecutionGraph(scope="task_002.r1.").next_id()
        'task_002.r1.task_000'
    """

    model_config = ConfigDict(frozen=False)

    scope: str = Field(
        default="",
        description="Prefix applied to generated task IDs",
    )
    nodes: dict[str, TaskNode] = Field(
        default_factory=dict,
        description="Task ID -> TaskNode mapping in insertion order",
    )
    depth: int = Field(
        default=0,
        ge=0,
        description="Recovery nesting level (0 for the main plan)",
    )
    parent_task_id: str | None = Field(
        default=None,
        description="Failed task this graph was planned to recover",
    )
    strategy: PlanStrategy | None = Field(
        default=None,
        description="Generation strategy that produced the graph",
    )

    _counter: int = PrivateAttr(default=0)

    def next_id(self) -> str:
        """Allocate the next graph-scoped task ID."""
        while True:
            task_id = f"{self.scope}task_{self._counter:03d}"
            self._counter += 1
            if task_id not in self.nodes:
                return task_id

    def add_node(self, node: TaskNode) -> TaskNode:
        """Add a node to the graph.

        Raises:
            ValueError: If a node with the same ID already exists.
        """
        if node.id in self.nodes:
            raise ValueError(f"Duplicate task id: {node.id}")
        self.nodes[node.id] = node
        return node

    def new_task(
        self,
        description: str,
        type: TaskKind = TaskKind.CHECKPOINT,
        file_path: str | None = None,
        dependencies: list[str] | None = None,
        validation_command: str | None = None,
        command: str | None = None,
    ) -> TaskNode:
        """Create a node with a fresh ID and add it to the graph."""
        return self.add_node(
            TaskNode(
                id=self.next_id(),
                description=description,
                type=type,
                file_path=file_path,
                command=command,
                dependencies=list(dependencies or []),
                validation_command=validation_command,
            )
        )

    def get(self, task_id: str) -> TaskNode | None:
        """Get a task by ID."""
        return self.nodes.get(task_id)

    def dependencies_in_graph(self, task_id: str) -> list[str]:
        """Dependencies of a task that refer to nodes of this graph."""
        node = self.nodes[task_id]
        return [d for d in node.dependencies if d in self.nodes]

    def dependents(self, task_id: str) -> list[str]:
        """Get tasks that depend on the given task."""
        return [tid for tid, node in self.nodes.items() if task_id in node.dependencies]

    def reset(self) -> None:
        """Return every node to pending; only used when re-running a plan from scratch."""
        for node in self.nodes.values():
            node.status = TaskStatus.PENDING
            node.retry_count = 0
            node.resolved_by = []

    @property
    def tasks(self) -> list[TaskNode]:
        """All nodes in insertion order."""
        return list(self.nodes.values())

    @property
    def statuses(self) -> dict[str, TaskStatus]:
        """Current status per task ID."""
        return {tid: node.status for tid, node in self.nodes.items()}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.nodes

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scope": self.scope,
            "depth": self.depth,
            "parent_task_id": self.parent_task_id,
            "strategy": self.strategy.value if self.strategy else None,
            "nodes": {k: v.to_dict() for k, v in self.nodes.items()},
        }


# =============================================================================
# REQUESTS AND PLANS
# =============================================================================


class PlanRequest(BaseModel):
    """Inbound planning request."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(
        ...,
        min_length=1,
        description="Natural-language engineering request",
    )
    project_hint: str | None = Field(
        default=None,
        description="Project type hint (e.g. 'script', 'api', 'recovery')",
    )
    known_files: list[str] = Field(
        default_factory=list,
        description="Workspace-relative files known to exist",
    )
    active_file: str | None = Field(
        default=None,
        description="File the user is currently focused on",
    )

    def summary(self) -> str:
        """Short context string handed to capabilities."""
        lines = [f"Request: {self.query}"]
        if self.project_hint:
            lines.append(f"Project type: {self.project_hint}")
        if self.active_file:
            lines.append(f"Active file: {self.active_file}")
        if self.known_files:
            lines.append(f"Known files: {', '.join(self.known_files[:20])}")
        return "\n".join(lines)


class Plan:
    """A built graph with its derived execution order and critical path."""

    FINAL_TASK = "final"

    # Checks for files whose task carries no validation command of its own
    DEFAULT_FILE_CHECKS = {
        ".ts": "npm run typecheck",
        ".tsx": "npm run typecheck",
    }

    # Whole-plan checks run after every task, keyed by project hint
    FINAL_CHECKS = {
        "api": ["npm run test"],
        "web": ["npm run lint && npm run build"],
        "fullstack": ["npm run lint && npm run build"],
    }

    def __init__(
        self,
        graph: ExecutionGraph,
        order: list[str],
        critical_path: list[str],
        strategy: PlanStrategy | None = None,
        project_hint: str | None = None,
    ):
        self.graph = graph
        self.order = order
        self.critical_path = critical_path
        self.strategy = strategy
        self.project_hint = project_hint

    def _default_check(self, node: TaskNode) -> str | None:
        if not node.file_path:
            return None
        suffix = PurePosixPath(node.file_path).suffix
        return self.DEFAULT_FILE_CHECKS.get(suffix)

    @property
    def validation_commands(self) -> list[tuple[str, str]]:
        """
        (task id, command) pairs in execution order.

        Tasks without a validation command get a default check from their
        file type. Whole-plan checks follow under the ``final`` task id.
        """
        pairs = []
        for task_id in self.order:
            node = self.graph.nodes[task_id]
            command = node.validation_command or self._default_check(node)
            if command:
                pairs.append((task_id, command))

        pairs.append((self.FINAL_TASK, "npm run build"))
        for command in self.FINAL_CHECKS.get(self.project_hint or "", []):
            pairs.append((self.FINAL_TASK, command))
        return pairs

    def format(self) -> str:
        """Render the plan as human-readable text."""
        critical = set(self.critical_path)
        lines = ["## Task Execution Plan", "", "### Execution Order:"]
        for i, task_id in enumerate(self.order, start=1):
            node = self.graph.nodes[task_id]
            marker = "*" if task_id in critical else "-"
            lines.append(f"{i}. {marker} [{task_id}] ({node.type.value}) {node.description}")
            if node.file_path:
                lines.append(f"   file: {node.file_path}")
            if node.command:
                lines.append(f"   command: {node.command}")

        lines.extend(["", "### Validation Commands:"])
        for task_id, command in self.validation_commands:
            lines.append(f"- `{task_id}`: `{command}`")

        lines.extend(["", "### Critical Path:", " -> ".join(self.critical_path)])
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "strategy": self.strategy.value if self.strategy else None,
            "project_hint": self.project_hint,
            "graph": self.graph.to_dict(),
            "order": self.order,
            "critical_path": self.critical_path,
            "validation_commands": [
                {"task": task_id, "command": command}
                for task_id, command in self.validation_commands
            ],
        }
