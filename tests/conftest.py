"""Pytest configuration and shared fixtures."""

import asyncio
import os
from collections.abc import Generator

import pytest

from dagwright.execution.capabilities import (
    ActionRequest,
    ActionResult,
    ValidationRequest,
    ValidationResult,
)
from dagwright.planning.models import ExecutionGraph, PlanRequest, TaskKind, TaskNode
from dagwright.planning.synthesis import SynthesisRequest

# Set test environment: planning stays offline unless a test injects a synthesizer
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.setdefault("DAGWRIGHT_LOG_LEVEL", "DEBUG")


@pytest.fixture(autouse=True)
def fresh_settings() -> Generator:
    """Clear cached settings around every test."""
    from dagwright.core.config import clear_settings_cache

    clear_settings_cache()

    yield

    clear_settings_cache()


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class ScriptedCapability:
    """Action and validation capability whose outcomes are queued per key.

    Actions are keyed by command, falling back to path; validations by
    command. Anything not scripted succeeds.
    """

    def __init__(self) -> None:
        self.actions: list[ActionRequest] = []
        self.validations: list[ValidationRequest] = []
        self.action_results: dict[str, list[ActionResult]] = {}
        self.validation_results: dict[str, list[ValidationResult]] = {}
        self.delay = 0.0

    def fail_action(self, key: str, error: str = "boom", times: int = 1) -> None:
        self.action_results.setdefault(key, []).extend(
            ActionResult(success=False, error_message=error) for _ in range(times)
        )

    def fail_validation(
        self,
        command: str,
        exit_code: int = 1,
        stderr: str = "",
        times: int = 1,
    ) -> None:
        self.validation_results.setdefault(command, []).extend(
            ValidationResult(exit_code=exit_code, stderr=stderr) for _ in range(times)
        )

    @property
    def performed(self) -> list[str]:
        return [r.command or r.path or "" for r in self.actions]

    async def perform(self, request: ActionRequest) -> ActionResult:
        self.actions.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        key = request.command or request.path or ""
        queue = self.action_results.get(key)
        if queue:
            return queue.pop(0)
        return ActionResult(success=True, output=f"ok: {key}")

    async def validate(self, request: ValidationRequest) -> ValidationResult:
        self.validations.append(request)
        queue = self.validation_results.get(request.command)
        if queue:
            return queue.pop(0)
        return ValidationResult(exit_code=0)


class FakeSynthesizer:
    """Synthesis capability returning canned replies in order."""

    def __init__(self, *replies: str | Exception) -> None:
        self.replies = list(replies)
        self.requests: list[SynthesisRequest] = []

    async def synthesize(self, request: SynthesisRequest) -> str:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else "[]"
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def scripted() -> ScriptedCapability:
    """Provide a scripted capability that succeeds by default."""
    return ScriptedCapability()


@pytest.fixture
def fake_synthesizer_factory() -> type[FakeSynthesizer]:
    """Provide the fake synthesizer class for tests to instantiate."""
    return FakeSynthesizer


# =============================================================================
# SAMPLE DATA
# =============================================================================


@pytest.fixture
def sample_request() -> PlanRequest:
    """Provide a plan request with some workspace context."""
    return PlanRequest(
        query="design a caching layer for our api client",
        known_files=["pyproject.toml", "client/api.py"],
    )


@pytest.fixture
def fork_graph() -> ExecutionGraph:
    """A with two dependents B and C."""
    graph = ExecutionGraph()
    graph.add_node(TaskNode(id="A", description="Create out.txt", type=TaskKind.COMMAND, command="touch out.txt"))
    graph.add_node(
        TaskNode(id="B", description="Read out.txt", type=TaskKind.COMMAND, command="cat out.txt", dependencies=["A"])
    )
    graph.add_node(
        TaskNode(id="C", description="Count lines", type=TaskKind.COMMAND, command="wc -l out.txt", dependencies=["A"])
    )
    return graph


@pytest.fixture
def diamond_graph() -> ExecutionGraph:
    """a -> (b, c) -> d, plus an independent e."""
    graph = ExecutionGraph()
    graph.add_node(TaskNode(id="a", description="Write interface"))
    graph.add_node(TaskNode(id="b", description="Implement service", dependencies=["a"]))
    graph.add_node(TaskNode(id="c", description="Implement client", dependencies=["a"]))
    graph.add_node(TaskNode(id="d", description="Wire together", dependencies=["b", "c"]))
    graph.add_node(TaskNode(id="e", description="Update changelog"))
    return graph


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
