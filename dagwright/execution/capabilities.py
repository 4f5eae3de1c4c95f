"""Execution capabilities - the side-effecting collaborators of the supervisor.

The supervisor never touches files or processes itself. It sends an
ActionRequest to a capability and gets back a uniform ActionResult, and
it runs validation commands through a ValidationCapability.
"""

import asyncio
import re
from enum import Enum
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# WIRE MODELS
# =============================================================================


class ActionKind(str, Enum):
    """Kind of side effect requested from a capability."""

    GENERATE = "generate"
    MODIFY = "modify"
    COMMAND = "command"


class ActionRequest(BaseModel):
    """Request for a task's primary action."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    path: str | None = None
    command: str | None = None
    context_summary: str = ""


class ActionResult(BaseModel):
    """Uniform result of a primary action."""

    success: bool
    output: str = ""
    error_message: str | None = None


class ValidationRequest(BaseModel):
    """Request to run a validation command."""

    model_config = ConfigDict(frozen=True)

    command: str = Field(..., min_length=1)


class ValidationResult(BaseModel):
    """Outcome of a validation command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def passed(self) -> bool:
        """Zero exit status."""
        return self.exit_code == 0


class ActionCapability(Protocol):
    """Performs generate/modify/command actions."""

    async def perform(self, request: ActionRequest) -> ActionResult: ...


class ValidationCapability(Protocol):
    """Runs validation commands."""

    async def validate(self, request: ValidationRequest) -> ValidationResult: ...


class TextCompleter(Protocol):
    """Single-turn text completion, e.g. AnthropicSynthesizer."""

    async def complete(self, prompt: str) -> str: ...


# =============================================================================
# SHELL
# =============================================================================


class ShellCapability:
    """
    Run shell commands in the workspace.

    Serves both as the command action capability and as the validation
    capability. Cancellation (e.g. a supervisor timeout) kills the
    running process.

    Example:
        >>> shell = ShellCapability("/path/to/project")
        >>> result = await shell.validate(ValidationRequest(command="test -f out.txt"))
        >>> result.passed
        False
    """

    def __init__(
        self,
        workspace: str | Path,
        output_limit: int = 5000,
    ):
        self.workspace = Path(workspace).resolve()
        self.output_limit = output_limit

    async def _run(self, command: str) -> tuple[int, str, str]:
        logger.debug(f"Running in {self.workspace}: {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(self.workspace),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        return (
            process.returncode if process.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace")[: self.output_limit],
            stderr.decode("utf-8", errors="replace")[: self.output_limit],
        )

    async def perform(self, request: ActionRequest) -> ActionResult:
        """Run the request's command."""
        if not request.command:
            return ActionResult(success=False, error_message="No command to run")

        code, stdout, stderr = await self._run(request.command)
        if code != 0:
            return ActionResult(
                success=False,
                output=stdout,
                error_message=f"`{request.command}` exited with status {code}: {stderr or stdout}".strip(),
            )
        return ActionResult(success=True, output=stdout)

    async def validate(self, request: ValidationRequest) -> ValidationResult:
        """Run a validation command and report its exit status."""
        code, stdout, stderr = await self._run(request.command)
        return ValidationResult(exit_code=code, stdout=stdout, stderr=stderr)


# =============================================================================
# CONTENT
# =============================================================================


_FENCE = re.compile(r"^```[\w+-]*\n(.*?)\n?```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove a single markdown code fence wrapping the whole text."""
    stripped = text.strip()
    match = _FENCE.match(stripped)
    return match.group(1) if match else text


class ContentCapability:
    """
    Generate or rewrite a file's content with a language model.

    The model is asked for the complete file; the reply (minus a wrapping
    code fence) replaces the file. Paths outside the workspace are refused.
    """

    PROMPT = """You are an expert software engineer working in an existing project.

{context}

Task: {action} the file `{path}`.
{current}
Return ONLY the complete new content of `{path}`, with no explanation."""

    def __init__(self, llm: TextCompleter | None, workspace: str | Path):
        self.llm = llm
        self.workspace = Path(workspace).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.workspace / path).resolve()
        if not target.is_relative_to(self.workspace):
            raise ValueError(f"Path {path} is outside the workspace")
        return target

    async def perform(self, request: ActionRequest) -> ActionResult:
        """Write generated content to the request's path."""
        if self.llm is None:
            return ActionResult(
                success=False,
                error_message="No language model configured for content generation (set ANTHROPIC_API_KEY)",
            )
        if not request.path:
            return ActionResult(success=False, error_message="No target file for content task")

        try:
            target = self._resolve(request.path)
        except ValueError as e:
            return ActionResult(success=False, error_message=str(e))

        current = ""
        if request.kind == ActionKind.MODIFY and target.exists():
            current = f"Current content:\n```\n{target.read_text(encoding='utf-8')}\n```\n"

        prompt = self.PROMPT.format(
            context=request.context_summary,
            action="Create" if request.kind == ActionKind.GENERATE else "Modify",
            path=request.path,
            current=current,
        )
        content = strip_code_fences(await self.llm.complete(prompt))
        if not content.strip():
            return ActionResult(success=False, error_message=f"Model returned no content for {request.path}")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content if content.endswith("\n") else content + "\n", encoding="utf-8")
        logger.info(f"Wrote {len(content)} characters to {request.path}")
        return ActionResult(success=True, output=f"Wrote {request.path}")


# =============================================================================
# DRY RUN
# =============================================================================


class DryRunCapability:
    """
    Capability that records requests without performing them.

    Every action succeeds and every validation exits 0. Useful for
    previewing a plan's execution.
    """

    def __init__(self) -> None:
        self.actions: list[ActionRequest] = []
        self.validations: list[ValidationRequest] = []

    async def perform(self, request: ActionRequest) -> ActionResult:
        self.actions.append(request)
        target = request.command or request.path or ""
        return ActionResult(success=True, output=f"Dry run: {request.kind.value} {target}".strip())

    async def validate(self, request: ValidationRequest) -> ValidationResult:
        self.validations.append(request)
        return ValidationResult(exit_code=0, stdout=f"Dry run: {request.command}")
