"""Recovery planner - builds a corrective sub-graph for a failed task."""

from loguru import logger

from dagwright.core.exceptions import NoRecoveryPlan, PlanningFailed
from dagwright.planning.builder import GraphBuilder
from dagwright.planning.models import ExecutionGraph, PlanRequest, TaskNode


class RecoveryPlanner:
    """
    Plan recovery sub-graphs through the graph builder.

    The failure is folded into a new request and sent back through the
    normal planning path. The resulting graph is scoped under the failed
    task's ID and recovery attempt, so ``task_002`` failing for the first
    time gets recovery tasks ``task_002.r1.task_000``, ``task_002.r1.task_001``...

    Example:
        >>> planner = RecoveryPlanner(GraphBuilder(synthesizer))
        >>> sub_graph = await planner.recover(node, "exit status 1", request)
        >>> sub_graph.parent_task_id
        'task_002'
    """

    QUERY_TEMPLATE = "Task '{description}' failed with error: {error}. Fix it. Context: {context}"

    def __init__(self, builder: GraphBuilder):
        self.builder = builder

    @staticmethod
    def scope_for(failed_task: TaskNode) -> str:
        """ID prefix for a failed task's current recovery attempt."""
        return f"{failed_task.id}.r{failed_task.retry_count}."

    async def recover(
        self,
        failed_task: TaskNode,
        error: str,
        request: PlanRequest,
        depth: int = 0,
    ) -> ExecutionGraph:
        """
        Build a recovery graph for ``failed_task``.

        Args:
            failed_task: The node that failed.
            error: Error message of the failure.
            request: Original request; its query is kept as context.
            depth: Recovery nesting level of the failed task's graph.

        Returns:
            Non-empty ExecutionGraph one level deeper than the failed task.

        Raises:
            NoRecoveryPlan: If planning fails or yields no tasks.
        """
        recovery_request = PlanRequest(
            query=self.QUERY_TEMPLATE.format(
                description=failed_task.description,
                error=error,
                context=request.query,
            ),
            project_hint="recovery",
            known_files=request.known_files,
            active_file=failed_task.file_path or request.active_file,
        )

        logger.info(f"Planning recovery for task {failed_task.id}")
        try:
            graph = await self.builder.build_graph(
                recovery_request,
                scope=self.scope_for(failed_task),
                depth=depth + 1,
                parent_task_id=failed_task.id,
            )
        except PlanningFailed as e:
            raise NoRecoveryPlan(failed_task.id, str(e)) from e

        if len(graph) == 0:
            raise NoRecoveryPlan(failed_task.id, "recovery plan is empty")

        logger.info(f"Recovery plan for {failed_task.id} has {len(graph)} tasks")
        return graph
