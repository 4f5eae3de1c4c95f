"""Unit tests for template strategies and command inference."""

import pytest

from dagwright.planning.classifier import classify
from dagwright.planning.models import ExecutionGraph, PlanRequest, PlanStrategy, TaskKind
from dagwright.planning.templates import (
    NODE_PROFILE,
    PYTHON_PROFILE,
    TemplatePlanner,
    detect_language,
    detect_profile,
    infer_command,
)


def expand(request: PlanRequest, strategy: PlanStrategy | None = None) -> ExecutionGraph:
    """Expand a request with the template planner into a fresh graph."""
    graph = ExecutionGraph()
    TemplatePlanner().expand(strategy or classify(request), request, graph)
    return graph


# =============================================================================
# TEMPLATE TESTS
# =============================================================================


class TestDetection:
    """Tests for language and profile detection."""

    def test_language_from_query(self) -> None:
        """Test that the query names the language."""
        assert detect_language(PlanRequest(query="write a bash script that greets")).ext == "sh"

    def test_language_from_known_files(self) -> None:
        """Test falling back to known file extensions."""
        request = PlanRequest(query="print the date", known_files=["index.js"])

        assert detect_language(request).run == "node"

    def test_language_default(self) -> None:
        """Test the python default."""
        assert detect_language(PlanRequest(query="print the date")).name == "python"

    def test_profiles(self) -> None:
        """Test scaffolding profile detection."""
        assert detect_profile(PlanRequest(query="x", known_files=["package.json"])) == NODE_PROFILE
        assert detect_profile(PlanRequest(query="x", known_files=["setup.py"])) == PYTHON_PROFILE
        assert detect_profile(PlanRequest(query="x")) == PYTHON_PROFILE


class TestTemplatePlanner:
    """Tests for TemplatePlanner strategies."""

    def test_command_sequence_chains_steps(self) -> None:
        """Test one command per step, each depending on the previous one."""
        graph = expand(PlanRequest(query="git pull then npm install"))

        assert [n.command for n in graph.tasks] == ["git pull", "npm install"]
        assert graph.nodes["task_001"].dependencies == ["task_000"]
        assert all(n.type == TaskKind.COMMAND for n in graph.tasks)

    def test_script_creates_then_runs(self) -> None:
        """Test the create-and-run script template."""
        graph = expand(PlanRequest(query="print the first 10 primes in python"))
        create, run = graph.tasks

        assert create.type == TaskKind.GENERATE
        assert create.file_path == "script.py"
        assert create.validation_command == "python3 -m py_compile script.py"
        assert run.command == "python3 script.py"
        assert run.dependencies == [create.id]

    def test_script_runs_existing_file_only(self) -> None:
        """Test that running a known file skips generation."""
        graph = expand(PlanRequest(query="run main.py", known_files=["main.py"]))

        assert len(graph) == 1
        assert graph.tasks[0].command == "python3 main.py"
        assert graph.tasks[0].dependencies == []

    def test_simple_modification(self) -> None:
        """Test a single modify task on the named file."""
        graph = expand(PlanRequest(query="delete line 12 in utils.py."))

        assert len(graph) == 1
        assert graph.tasks[0].type == TaskKind.MODIFY
        assert graph.tasks[0].file_path == "utils.py"

    def test_simple_creation(self) -> None:
        """Test that creating an unknown file generates it."""
        graph = expand(PlanRequest(query="create file notes.txt"))

        assert graph.tasks[0].type == TaskKind.GENERATE
        assert graph.tasks[0].file_path == "notes.txt"

    def test_simple_modification_uses_active_file(self) -> None:
        """Test falling back to the active file."""
        request = PlanRequest(query="remove 3 blank lines", active_file="main.go")
        graph = expand(request, PlanStrategy.SIMPLE_MODIFICATION)

        assert graph.tasks[0].file_path == "main.go"

    def test_stress_test(self) -> None:
        """Test the four-step stress test template."""
        graph = expand(PlanRequest(query="stress test the python server for 10 minutes"))

        assert len(graph) == 4
        assert graph.nodes["task_002"].command == "python3 stress_test_runner.py"
        assert graph.nodes["task_003"].dependencies == ["task_002"]

    def test_node_scaffold(self) -> None:
        """Test scaffolding a node project with folders."""
        request = PlanRequest(
            query="set up the basics",
            known_files=["package.json", "src/", "index.ts"],
        )
        graph = expand(request)
        commands = [n.command for n in graph.tasks]

        assert commands[0] == "npm init -y"
        assert "npm install" in commands
        assert "npx tsc --init" in commands
        assert "mkdir -p src/" in commands
        assert graph.tasks[-1].file_path == "tests/index.test.ts"
        assert graph.tasks[-1].validation_command == "npm test"

    def test_python_scaffold(self) -> None:
        """Test scaffolding a python project."""
        request = PlanRequest(query="set up the basics", known_files=["a.py", "b.py", "c.py"])
        graph = expand(request, PlanStrategy.SCAFFOLD)

        assert graph.tasks[0].type == TaskKind.GENERATE
        assert graph.tasks[0].file_path == "pyproject.toml"
        assert graph.tasks[-1].validation_command == "pytest -q"

    def test_generic_phases(self) -> None:
        """Test the offline analyse/plan/execute/verify plan."""
        request = PlanRequest(query="fix the flaky login", active_file="auth.py")
        graph = expand(request, PlanStrategy.OPEN_ENDED)

        assert len(graph) == 4
        execute = graph.nodes["task_002"]
        assert execute.description.startswith("Apply fixes")
        assert execute.type == TaskKind.MODIFY
        assert execute.file_path == "auth.py"
        assert graph.nodes["task_003"].validation_command == "pytest -q"

    def test_deterministic(self) -> None:
        """Test that the same request always yields the same graph."""
        request = PlanRequest(query="git pull then npm install")

        assert expand(request).to_dict() == expand(request).to_dict()


class TestInferCommand:
    """Tests for infer_command()."""

    @pytest.mark.parametrize(
        "step, expected",
        [
            (
                "clone https://github.com/acme/widget.git",
                ("git clone https://github.com/acme/widget.git", "test -d widget"),
            ),
            ("install pip packages", ("pip install -r requirements.txt", "pip list")),
            ("install", ("npm install", "npm list --depth=0")),
            ("npm install", ("npm install", None)),
            ("commit 'fix typo'", ('git add . && git commit -m "fix typo"', "git log -1 --oneline")),
            ("push", ("git push", "git status")),
            ("curl https://example.com/health", ("curl https://example.com/health", None)),
            ("check url https://example.com", ("curl -I https://example.com", None)),
            ("run make build", ("make build", None)),
            ("ls -la", ("ls -la", None)),
        ],
    )
    def test_infer(self, step: str, expected: tuple[str, str | None]) -> None:
        """Test command inference for common steps."""
        assert infer_command(step) == expected
