"""Request classifier - picks a plan generation strategy using keyword heuristics."""

import re

from loguru import logger

from dagwright.planning.models import PlanRequest, PlanStrategy

STRESS_KEYWORDS = ("max time", "stress test", "load test", "run for")

COMPLEX_KEYWORDS = (
    "refactor",
    "rewrite",
    "optimize",
    "structure",
    "architecture",
    "pattern",
    "implement feature",
)
MULTI_STEP_MARKERS = (" and ", " then ", " also ", ",", ";")

SEQUENCE_KEYWORDS = (
    "then", "after", "and", "clone", "commit", "push", "pull",
    "install", "curl", "wget", "git",
)
COMMON_BINARIES = (
    "ls", "pwd", "cp", "mv", "rm", "mkdir", "cat", "echo", "touch", "grep",
    "find", "sed", "awk", "tar", "zip", "unzip", "ps", "kill", "df", "du",
    "npx", "npm", "yarn", "pnpm", "node", "python", "pip", "pytest", "make",
)

EXECUTION_VERBS = ("run", "execute", "calculate", "compute", "evaluate", "start", "launch", "test")
CODE_INDICATORS = (
    "script", "code", "function", "snippet", "file", "program", "python",
    "js", "ts", "node", "bash", "shell", "ruby", "go", "rust",
)

_LINE_NUMBER = re.compile(r"\b(line|lines)\s+\d+")
_IMPLICIT_LINE_ACTION = re.compile(r"(remove|delete|edit|change)\s+\d+")
_SIMPLE_ACTION = re.compile(r"(create|make|remove|delete|edit|change|update)\s+(file|line)")
_MATH_EXPRESSION = re.compile(r"\d+\s*[+\-*/]\s*\d+")


def classify(request: PlanRequest) -> PlanStrategy:
    """
    Classify a request into a generation strategy.

    Checks run from most to least specific; the first match wins. Template
    strategies are preferred whenever a pattern matches unambiguously, and
    only requests that look complex or match nothing fall through to
    synthesis.

    Args:
        request: Incoming plan request.

    Returns:
        The selected PlanStrategy.

    Example:
        >>> classify(PlanRequest(query="git pull then npm install"))
        <PlanStrategy.COMMAND_SEQUENCE: 'command_sequence'>
    """
    strategy = _classify(request)
    logger.debug(f"Classified request as {strategy.value}: {request.query[:80]!r}")
    return strategy


def _classify(request: PlanRequest) -> PlanStrategy:
    query = request.query.lower().strip()

    if request.project_hint == "script":
        return PlanStrategy.SCRIPT

    if any(k in query for k in STRESS_KEYWORDS):
        return PlanStrategy.STRESS_TEST

    if is_complex(query):
        return PlanStrategy.COMPLEX_MODIFICATION

    if is_simple_modification(query):
        return PlanStrategy.SIMPLE_MODIFICATION

    if is_command_sequence(query):
        return PlanStrategy.COMMAND_SEQUENCE

    if is_script_execution(query):
        return PlanStrategy.SCRIPT

    if len(request.known_files) > 2:
        return PlanStrategy.SCAFFOLD

    return PlanStrategy.OPEN_ENDED


def is_complex(query: str) -> bool:
    """Architectural keywords, or multi-step phrasing on a longer request."""
    if any(k in query for k in COMPLEX_KEYWORDS):
        return True
    multi_step = any(m in query for m in MULTI_STEP_MARKERS)
    return multi_step and len(query) > 30


def is_simple_modification(query: str) -> bool:
    """Short edits that name a line or a single file."""
    if len(query.split()) >= 30:
        return False
    if "project" in query or "app" in query:
        return False
    return bool(
        _LINE_NUMBER.search(query)
        or _IMPLICIT_LINE_ACTION.search(query)
        or _SIMPLE_ACTION.search(query)
    )


def is_command_sequence(query: str) -> bool:
    """Chained steps, git operations or a request that starts with a known binary."""
    has_sequence = (
        any(f" {k} " in query for k in SEQUENCE_KEYWORDS)
        or " && " in query
        or ";" in query
    )
    is_git = query.startswith("git") or "clone repo" in query or "commit code" in query
    is_shell = any(query == b or query.startswith(b + " ") for b in COMMON_BINARIES)
    return has_sequence or is_git or is_shell


def is_script_execution(query: str) -> bool:
    """Execution verbs, short code-related phrasing or arithmetic."""
    words = set(re.findall(r"[a-z]+", query))
    has_verb = any(v in words for v in EXECUTION_VERBS)
    has_code = any(i in words for i in CODE_INDICATORS)
    return has_verb or (has_code and len(query) < 50) or bool(_MATH_EXPRESSION.search(query))
