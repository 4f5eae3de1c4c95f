"""Error taxonomy shared by the planner and the execution supervisor."""


class DagwrightError(Exception):
    """Base exception for Dagwright errors."""

    pass


class PlanningFailed(DagwrightError):
    """The graph builder produced no usable tasks."""

    pass


class CircularDependency(DagwrightError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")


class DependencyUnmet(DagwrightError):
    """A task was reached before its dependencies were satisfied.

    This is an internal consistency failure (a sequencing bug), so it is
    never handed to recovery.
    """

    def __init__(self, task_id: str, pending: list[str]) -> None:
        self.task_id = task_id
        self.pending = pending
        super().__init__(
            f"Task {task_id} cannot start because dependencies "
            f"{', '.join(pending)} are not complete"
        )


class TaskFailed(DagwrightError):
    """A task failed and recovery did not resolve it."""

    def __init__(self, task_id: str, reason: str) -> None:
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Task {task_id} failed: {reason}")


class NoRecoveryPlan(DagwrightError):
    """The recovery planner could not produce a usable sub-graph."""

    def __init__(self, task_id: str, reason: str) -> None:
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"No recovery plan for task {task_id}: {reason}")


class UnknownTaskKind(DagwrightError):
    """A task kind has no execution capability bound to it."""

    pass


class InvalidTransition(DagwrightError):
    """A task status change would regress or skip a state."""

    pass


class RunCancelled(DagwrightError):
    """The caller cancelled the run between tasks."""

    pass
