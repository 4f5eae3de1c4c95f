"""Unit tests for the recovery planner."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from dagwright.core.exceptions import NoRecoveryPlan, PlanningFailed
from dagwright.execution.recovery import RecoveryPlanner
from dagwright.planning.builder import GraphBuilder
from dagwright.planning.models import ExecutionGraph, PlanRequest, TaskKind, TaskNode, TaskStatus


@pytest.fixture
def failed_node() -> TaskNode:
    """Provide a node that has just failed for the first time."""
    node = TaskNode(
        id="task_001",
        description="npm install",
        type=TaskKind.COMMAND,
        command="npm install",
        file_path="package.json",
    )
    node.transition(TaskStatus.RUNNING)
    node.transition(TaskStatus.FAILED)
    node.retry_count = 1
    return node


@pytest.fixture
def original_request() -> PlanRequest:
    """Provide the request the failing plan came from."""
    return PlanRequest(query="git pull then npm install", known_files=["package.json", "index.js"])


class TestRecoveryPlanner:
    """Tests for RecoveryPlanner."""

    def test_scope_for(self, failed_node: TaskNode) -> None:
        """Test the ID prefix of a recovery attempt."""
        assert RecoveryPlanner.scope_for(failed_node) == "task_001.r1."

        failed_node.retry_count = 2
        assert RecoveryPlanner.scope_for(failed_node) == "task_001.r2."

    @pytest.mark.asyncio
    async def test_builds_recovery_request(self, failed_node: TaskNode, original_request: PlanRequest) -> None:
        """Test the request and graph metadata handed to the builder."""
        builder = MagicMock()
        graph = ExecutionGraph(scope="task_001.r1.")
        graph.new_task("Clear npm cache", type=TaskKind.COMMAND, command="npm cache clean --force")
        builder.build_graph = AsyncMock(return_value=graph)
        planner = RecoveryPlanner(builder)

        result = await planner.recover(failed_node, "ERESOLVE unable to resolve", original_request, depth=0)

        assert result is graph
        request = builder.build_graph.await_args.args[0]
        assert request.query == (
            "Task 'npm install' failed with error: ERESOLVE unable to resolve. "
            "Fix it. Context: git pull then npm install"
        )
        assert request.project_hint == "recovery"
        assert request.active_file == "package.json"
        assert request.known_files == original_request.known_files
        kwargs = builder.build_graph.await_args.kwargs
        assert kwargs == {"scope": "task_001.r1.", "depth": 1, "parent_task_id": "task_001"}

    @pytest.mark.asyncio
    async def test_planning_failure(self, failed_node: TaskNode, original_request: PlanRequest) -> None:
        """Test that planning failures become NoRecoveryPlan."""
        builder = MagicMock()
        builder.build_graph = AsyncMock(side_effect=PlanningFailed("No tasks generated"))

        with pytest.raises(NoRecoveryPlan) as exc_info:
            await RecoveryPlanner(builder).recover(failed_node, "boom", original_request)

        assert exc_info.value.task_id == "task_001"
        assert "No tasks generated" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_empty_graph(self, failed_node: TaskNode, original_request: PlanRequest) -> None:
        """Test that an empty graph is not a usable plan."""
        builder = MagicMock()
        builder.build_graph = AsyncMock(return_value=ExecutionGraph())

        with pytest.raises(NoRecoveryPlan, match="empty"):
            await RecoveryPlanner(builder).recover(failed_node, "boom", original_request)

    @pytest.mark.asyncio
    async def test_with_real_builder(self, failed_node: TaskNode, original_request: PlanRequest) -> None:
        """Test recovery through the template planner end to end."""
        planner = RecoveryPlanner(GraphBuilder())

        graph = await planner.recover(failed_node, "exit status 1", original_request, depth=1)

        assert graph.depth == 2
        assert graph.parent_task_id == "task_001"
        assert len(graph) > 0
        assert all(task_id.startswith("task_001.r1.") for task_id in graph.nodes)

    @pytest.mark.asyncio
    async def test_synthesized_recovery(
        self, fake_synthesizer_factory, failed_node: TaskNode, original_request: PlanRequest
    ) -> None:
        """Test that synthesized recovery tasks are scoped under the failed task."""
        synthesizer = fake_synthesizer_factory(
            '[{"id": "1", "description": "Remove lockfile", "type": "command", "command": "rm package-lock.json"},'
            ' {"id": "2", "description": "Reinstall", "type": "command", "command": "npm install", "dependencies": ["1"]}]'
        )
        planner = RecoveryPlanner(GraphBuilder(synthesizer=synthesizer))

        graph = await planner.recover(failed_node, "ERESOLVE", original_request)

        assert list(graph.nodes) == ["task_001.r1.task_000", "task_001.r1.task_001"]
        assert graph.nodes["task_001.r1.task_001"].dependencies == ["task_001.r1.task_000"]
