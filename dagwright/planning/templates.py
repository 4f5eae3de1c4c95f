"""Template strategies - deterministic task graphs for recognisable requests."""

import re
from dataclasses import dataclass

from loguru import logger

from dagwright.planning.models import ExecutionGraph, PlanRequest, PlanStrategy, TaskKind

# =============================================================================
# LANGUAGE AND PROJECT PROFILES
# =============================================================================


@dataclass(frozen=True)
class Language:
    """How to name, run and syntax-check a single-file script."""

    name: str
    ext: str
    run: str
    check: str | None = None


LANGUAGES: dict[str, Language] = {
    "python": Language("python", "py", "python3", "python3 -m py_compile"),
    "javascript": Language("javascript", "js", "node", "node --check"),
    "js": Language("javascript", "js", "node", "node --check"),
    "node": Language("javascript", "js", "node", "node --check"),
    "typescript": Language("typescript", "ts", "npx ts-node", "npx tsc --noEmit"),
    "ts": Language("typescript", "ts", "npx ts-node", "npx tsc --noEmit"),
    "bash": Language("bash", "sh", "bash", "bash -n"),
    "shell": Language("bash", "sh", "bash", "bash -n"),
    "sh": Language("bash", "sh", "bash", "bash -n"),
    "go": Language("go", "go", "go run", "gofmt -l"),
    "golang": Language("go", "go", "go run", "gofmt -l"),
    "ruby": Language("ruby", "rb", "ruby", "ruby -c"),
    "php": Language("php", "php", "php", "php -l"),
    "java": Language("java", "java", "java"),
}
DEFAULT_LANGUAGE = LANGUAGES["python"]


@dataclass(frozen=True)
class ProjectProfile:
    """Commands used when scaffolding a project of one ecosystem."""

    name: str
    manifest: str
    init_command: str | None
    install_command: str
    test_setup_command: str
    test_file: str
    test_command: str
    config_file: str | None = None
    config_command: str | None = None


PYTHON_PROFILE = ProjectProfile(
    name="python",
    manifest="pyproject.toml",
    init_command=None,
    install_command="pip install -e .",
    test_setup_command="pip install pytest",
    test_file="tests/test_smoke.py",
    test_command="pytest -q",
)
NODE_PROFILE = ProjectProfile(
    name="node",
    manifest="package.json",
    init_command="npm init -y",
    install_command="npm install",
    test_setup_command="npm install -D jest ts-jest @types/jest",
    test_file="tests/index.test.ts",
    test_command="npm test",
    config_file="tsconfig.json",
    config_command="npx tsc --init",
)

NODE_MARKERS = ("package.json", ".js", ".ts", ".tsx", ".jsx")
PYTHON_MARKERS = ("pyproject.toml", "setup.py", "requirements.txt", ".py")

_URL = re.compile(r"(?:https?|git|ssh)://\S+")
_HTTP_URL = re.compile(r"https?://\S+")
_QUOTED = re.compile(r"['\"]([^'\"]+)['\"]")
_STEP_SPLIT = re.compile(r"\s+then\s+|\s+and\s+|\s*&&\s*|,\s*|;\s*", re.IGNORECASE)


def detect_language(request: PlanRequest) -> Language:
    """Pick a script language from the query, then from known files."""
    words = re.findall(r"[a-z]+", request.query.lower())
    for word in words:
        if word in LANGUAGES:
            return LANGUAGES[word]

    for path in request.known_files:
        ext = path.rsplit(".", 1)[-1] if "." in path else ""
        for language in LANGUAGES.values():
            if language.ext == ext:
                return language

    return DEFAULT_LANGUAGE


def detect_profile(request: PlanRequest) -> ProjectProfile:
    """Pick the scaffolding profile from known files (python by default)."""
    for path in request.known_files:
        if path.endswith(PYTHON_MARKERS):
            return PYTHON_PROFILE
        if path.endswith(NODE_MARKERS):
            return NODE_PROFILE
    return PYTHON_PROFILE


# =============================================================================
# TEMPLATE PLANNER
# =============================================================================


class TemplatePlanner:
    """
    Expand recognisable requests into task graphs without any model call.

    Every node gets its ID from the target graph's counter, so the same
    request always yields the same graph.

    Example:
        >>> planner = TemplatePlanner()
        >>> graph = ExecutionGraph()
        >>> planner.expand(PlanStrategy.COMMAND_SEQUENCE, request, graph)
        >>> [n.command for n in graph.tasks]
        ['git pull', 'npm install']
    """

    def expand(
        self,
        strategy: PlanStrategy,
        request: PlanRequest,
        graph: ExecutionGraph,
    ) -> ExecutionGraph:
        """
        Add the tasks for a template strategy to ``graph``.

        Args:
            strategy: A non-synthesis strategy, or OPEN_ENDED / COMPLEX
                to get the generic phased plan.
            request: The plan request.
            graph: Graph that receives the new nodes.

        Returns:
            The same graph, for chaining.
        """
        handlers = {
            PlanStrategy.SCRIPT: self.script_tasks,
            PlanStrategy.STRESS_TEST: self.stress_test_tasks,
            PlanStrategy.SIMPLE_MODIFICATION: self.simple_modification_tasks,
            PlanStrategy.COMMAND_SEQUENCE: self.command_sequence_tasks,
            PlanStrategy.SCAFFOLD: self.scaffold_tasks,
        }
        handler = handlers.get(strategy, self.generic_tasks)
        handler(request, graph)
        logger.debug(f"Template {strategy.value} produced {len(graph)} tasks")
        return graph

    def script_tasks(self, request: PlanRequest, graph: ExecutionGraph) -> None:
        """Create a script (unless it already exists and is only run) and run it."""
        language = detect_language(request)
        file_name = next(
            (f for f in request.known_files if f.endswith(f".{language.ext}")),
            f"script.{language.ext}",
        )
        query = request.query.strip()
        run_only = query.lower().startswith("run ") and file_name in request.known_files

        deps: list[str] = []
        if not run_only:
            create = graph.new_task(
                f"Create {language.name} script to solve: {query[:50]}",
                type=TaskKind.GENERATE,
                file_path=file_name,
                validation_command=f"{language.check} {file_name}" if language.check else None,
            )
            deps = [create.id]

        graph.new_task(
            f"Run {file_name} and report result",
            type=TaskKind.COMMAND,
            command=f"{language.run} {file_name}",
            dependencies=deps,
        )

    def stress_test_tasks(self, request: PlanRequest, graph: ExecutionGraph) -> None:
        """Config, long-running runner, execution and a results report."""
        language = detect_language(request)
        runner = f"stress_test_runner.{language.ext}"

        config = graph.new_task(
            "Prepare stress test environment",
            type=TaskKind.GENERATE,
            file_path="stress_test_config.json",
        )
        implement = graph.new_task(
            "Implement stress test logic (loop/timer)",
            type=TaskKind.GENERATE,
            file_path=runner,
            dependencies=[config.id],
            validation_command=f"{language.check} {runner}" if language.check else None,
        )
        run = graph.new_task(
            "Run stress test (high duration)",
            type=TaskKind.COMMAND,
            command=f"{language.run} {runner}",
            dependencies=[implement.id],
        )
        graph.new_task(
            "Analyze test results and logs",
            type=TaskKind.GENERATE,
            file_path="test_report.md",
            dependencies=[run.id],
        )

    def simple_modification_tasks(self, request: PlanRequest, graph: ExecutionGraph) -> None:
        """A single edit of the mentioned file, or of the active file."""
        file_path = request.active_file
        for word in request.query.split():
            candidate = word.strip("'\"`,;:()").rstrip(".")
            if "." in candidate and len(candidate) > 2:
                file_path = candidate

        lowered = request.query.lower()
        creates = any(v in lowered for v in ("create", "make")) and (
            file_path not in request.known_files
        )
        graph.new_task(
            request.query,
            type=TaskKind.GENERATE if creates else TaskKind.MODIFY,
            file_path=file_path,
        )

    def command_sequence_tasks(self, request: PlanRequest, graph: ExecutionGraph) -> None:
        """One command task per step, each depending on the previous step."""
        steps = [s.strip() for s in _STEP_SPLIT.split(request.query) if s and s.strip()]

        previous: str | None = None
        for step in steps:
            command, validation = infer_command(step)
            node = graph.new_task(
                step,
                type=TaskKind.COMMAND,
                command=command,
                dependencies=[previous] if previous else [],
                validation_command=validation,
            )
            previous = node.id

    def scaffold_tasks(self, request: PlanRequest, graph: ExecutionGraph) -> None:
        """Project setup, dependencies, directories and a first test."""
        profile = detect_profile(request)

        if profile.init_command:
            init = graph.new_task(
                f"Initialize project with {profile.manifest}",
                type=TaskKind.COMMAND,
                command=profile.init_command,
                validation_command=f"test -f {profile.manifest}",
            )
        else:
            init = graph.new_task(
                f"Initialize project with {profile.manifest}",
                type=TaskKind.GENERATE if profile.manifest not in request.known_files else TaskKind.MODIFY,
                file_path=profile.manifest,
            )

        install = graph.new_task(
            "Install dependencies",
            type=TaskKind.COMMAND,
            command=profile.install_command,
            dependencies=[init.id],
        )

        if profile.config_file and profile.config_command:
            graph.new_task(
                f"Configure {profile.config_file}",
                type=TaskKind.COMMAND,
                file_path=profile.config_file,
                command=profile.config_command,
                dependencies=[init.id],
            )

        folders = [f for f in request.known_files if f.endswith("/")]
        if folders:
            graph.new_task(
                "Create directory structure",
                type=TaskKind.COMMAND,
                command=f"mkdir -p {' '.join(folders)}",
                dependencies=[init.id],
            )

        setup = graph.new_task(
            "Setup testing framework",
            type=TaskKind.COMMAND,
            command=profile.test_setup_command,
            dependencies=[install.id],
        )
        graph.new_task(
            "Write initial tests",
            type=TaskKind.GENERATE,
            file_path=profile.test_file,
            dependencies=[setup.id],
            validation_command=profile.test_command,
        )

    def generic_tasks(self, request: PlanRequest, graph: ExecutionGraph) -> None:
        """Phased analyse / plan / execute / verify plan for offline planning."""
        query = request.query.lower()
        analyse = graph.new_task("Analyze context and requirements")
        plan = graph.new_task("Plan implementation details", dependencies=[analyse.id])

        action = "Execute changes"
        if "fix" in query:
            action = "Apply fixes"
        elif "refactor" in query:
            action = "Perform refactoring"
        elif "test" in query:
            action = "Implement tests"

        target = request.active_file
        execute = graph.new_task(
            f"{action}: {request.query}",
            type=TaskKind.MODIFY if target else TaskKind.CHECKPOINT,
            file_path=target,
            dependencies=[plan.id],
        )
        graph.new_task(
            "Verify and validate",
            dependencies=[execute.id],
            validation_command=detect_profile(request).test_command,
        )


def infer_command(step: str) -> tuple[str, str | None]:
    """
    Infer a shell command and an optional validation command for one step.

    Args:
        step: One step of a chained request, e.g. "clone https://x/y.git".

    Returns:
        Tuple of (command, validation command or None).

    Example:
        >>> infer_command("commit 'fix typo'")
        ('git add . && git commit -m "fix typo"', 'git log -1 --oneline')
    """
    lowered = step.lower()

    if "clone" in lowered:
        url = _URL.search(step)
        if not url:
            return "git clone <repo_url>", None
        repo = url.group(0).rstrip("/").split("/")[-1].removesuffix(".git")
        return f"git clone {url.group(0)}", f"test -d {repo}" if repo else None

    if "install" in lowered and not lowered.startswith(("pip ", "npm ", "yarn ")):
        if "pip" in lowered:
            return "pip install -r requirements.txt", "pip list"
        if "yarn" in lowered:
            return "yarn install", "yarn list --depth=0"
        return "npm install", "npm list --depth=0"

    if "commit" in lowered and not lowered.startswith("git "):
        quoted = _QUOTED.search(step)
        message = quoted.group(1) if quoted else "update"
        return f'git add . && git commit -m "{message}"', "git log -1 --oneline"

    if lowered == "push" or lowered.startswith("push "):
        return "git push", "git status"

    if "test api" in lowered or "check url" in lowered or "curl" in lowered:
        if lowered.startswith("curl "):
            return step, None
        url = _HTTP_URL.search(step)
        return (f"curl -I {url.group(0)}" if url else "curl <url>"), None

    if lowered.startswith(("run ", "exec ")):
        return step.split(None, 1)[1], None

    return step, None
