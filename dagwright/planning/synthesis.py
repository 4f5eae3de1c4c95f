"""Plan synthesis - delegates open-ended requests to a language model.

This module provides:
1. The synthesis capability interface and an Anthropic-backed implementation
2. A tolerant parse step that pulls the first well-formed JSON array or
   object out of free-form model output and validates each task entry
"""

import json
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dagwright.core.config import Settings, get_settings
from dagwright.planning.models import PlanStrategy

# =============================================================================
# WIRE MODELS
# =============================================================================


class SynthesisRequest(BaseModel):
    """Request sent to the graph-synthesis capability."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(..., description="Request to decompose")
    project_context: str = Field(default="", description="Project summary for the model")
    strategy: PlanStrategy = Field(
        default=PlanStrategy.OPEN_ENDED,
        description="Strategy that routed the request here",
    )


class SynthesizedTask(BaseModel):
    """One task entry as returned by the model, before renaming."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    id: str | None = None
    description: str = Field(..., min_length=1)
    type: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    file_path: str | None = Field(default=None, alias="filePath")
    command: str | None = None
    validation_command: str | None = Field(default=None, alias="validationCommand")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description must not be empty")
        return v

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_dependencies(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, (str, int)):
            return [str(v)]
        if isinstance(v, list):
            return [str(d) for d in v if isinstance(d, (str, int))]
        raise ValueError(f"dependencies must be a list, got {type(v).__name__}")


# =============================================================================
# TOLERANT PARSING
# =============================================================================


def _balanced_end(text: str, start: int) -> int | None:
    """Index of the bracket closing the one at ``start``, or None."""
    pairs = {"[": "]", "{": "}"}
    stack: list[str] = []
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in pairs:
            stack.append(pairs[ch])
        elif ch in "]}":
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i

    return None


def extract_json_payload(text: str) -> Any | None:
    """
    Extract the first well-formed JSON array or object from free-form text.

    Scans for each opening bracket in turn, finds its balanced closing
    bracket (ignoring brackets inside strings) and returns the first span
    that parses. Surrounding prose and markdown fences are ignored.

    Args:
        text: Raw model output.

    Returns:
        The decoded JSON value, or None if no span parses.

    Example:
        >>> extract_json_payload('Sure! ```json\\n[{"id": 1}]\\n```')
        [{'id': 1}]
    """
    position = 0
    while True:
        candidates = [i for i in (text.find("[", position), text.find("{", position)) if i != -1]
        if not candidates:
            return None
        start = min(candidates)
        end = _balanced_end(text, start)
        if end is not None:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                pass
        position = start + 1


def parse_synthesized_tasks(payload: Any) -> list[SynthesizedTask]:
    """
    Validate the shape of a decoded payload and keep the usable entries.

    Accepts a list of task objects, an object with a ``tasks`` list, or a
    single task object. Entries that are not objects or fail validation
    are dropped with a warning.

    Args:
        payload: Value returned by ``extract_json_payload``.

    Returns:
        List of valid SynthesizedTask entries (possibly empty).
    """
    if isinstance(payload, dict):
        entries = payload["tasks"] if isinstance(payload.get("tasks"), list) else [payload]
    elif isinstance(payload, list):
        entries = payload
    else:
        return []

    tasks: list[SynthesizedTask] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning(f"Dropping synthesized entry {index}: not an object")
            continue
        try:
            tasks.append(SynthesizedTask.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping malformed synthesized entry {index}: {e.error_count()} errors")

    return tasks


# =============================================================================
# SYNTHESIS CAPABILITY
# =============================================================================


class SynthesisCapability(Protocol):
    """Anything that can turn a request into raw task-list text."""

    async def synthesize(self, request: SynthesisRequest) -> str: ...


class AnthropicSynthesizer:
    """
    Synthesize task graphs with the Anthropic messages API.

    Also exposes ``complete`` so file content generation can share the
    same client and settings.

    Example:
        >>> synthesizer = AnthropicSynthesizer()
        >>> text = await synthesizer.synthesize(
        ...     SynthesisRequest(query="Add caching to the API client")
        ... )
    """

    PLANNING_PROMPT = """You are a senior technical project manager.
User request: "{query}"
{project_context}

Break this request down into a logical series of dependent tasks.
Output a JSON array of task objects:
[
  {{
    "id": "task_1",
    "description": "Clear, actionable task description",
    "type": "code" | "command",
    "dependencies": [],
    "filePath": "target file for code tasks",
    "command": "shell command for command tasks",
    "validationCommand": "optional command that exits 0 when the task succeeded"
  }}
]
Rules:
1. Keep it efficient (3-6 tasks for typical requests).
2. Dependencies must be logical (create a file before editing it).
3. Use specific filenames where possible.
4. Output ONLY JSON."""

    COMPLEX_PROMPT = """You are a senior software architect.
User request: "{query}"
{project_context}

The user wants a complex modification. Break it into granular, atomic
modification steps, each targeting one file or component, in a logical
order (interface -> implementation -> tests).
Output a JSON array of task objects:
[
  {{
    "id": "task_1",
    "description": "Specific change (e.g. 'Add factorial method to Calculator')",
    "type": "code",
    "dependencies": [],
    "filePath": "target file path if known"
  }}
]
Rules:
1. Separate tasks for separate files.
2. Put verification or test updates last.
3. Output ONLY JSON."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: Any = None,
    ) -> None:
        """
        Initialize the synthesizer.

        Args:
            settings: Optional settings override.
            client: Optional pre-built ``AsyncAnthropic`` client.
        """
        self.settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            api_key = self.settings.anthropic_api_key
            self._client = AsyncAnthropic(
                api_key=api_key.get_secret_value() if api_key else None,
            )
        return self._client

    async def complete(self, prompt: str, max_tokens: int | None = None) -> str:
        """Send a single-turn prompt and return the text of the reply."""
        client = self._get_client()
        response = await client.messages.create(
            model=self.settings.dagwright_model,
            max_tokens=max_tokens or self.settings.dagwright_max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )

    async def synthesize(self, request: SynthesisRequest) -> str:
        """Ask the model for a JSON task list."""
        template = (
            self.COMPLEX_PROMPT
            if request.strategy == PlanStrategy.COMPLEX_MODIFICATION
            else self.PLANNING_PROMPT
        )
        prompt = template.format(query=request.query, project_context=request.project_context)
        logger.debug(f"Calling {self.settings.dagwright_model} for plan synthesis")
        return await self.complete(prompt)
