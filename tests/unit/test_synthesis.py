"""Unit tests for plan synthesis and tolerant JSON parsing."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from dagwright.core.config import Settings
from dagwright.planning.models import PlanStrategy
from dagwright.planning.synthesis import (
    AnthropicSynthesizer,
    SynthesisRequest,
    SynthesizedTask,
    extract_json_payload,
    parse_synthesized_tasks,
)

# =============================================================================
# EXTRACTION TESTS
# =============================================================================


class TestExtractJsonPayload:
    """Tests for extract_json_payload()."""

    def test_plain_array(self) -> None:
        """Test a bare JSON array."""
        assert extract_json_payload('[{"id": "a"}]') == [{"id": "a"}]

    def test_surrounded_by_prose_and_fences(self) -> None:
        """Test that prose and markdown fences are ignored."""
        text = 'Here is the plan:\n```json\n[{"id": "a", "description": "Do it"}]\n```\nGood luck!'

        assert extract_json_payload(text) == [{"id": "a", "description": "Do it"}]

    def test_brackets_inside_strings(self) -> None:
        """Test that brackets in string values do not end the span."""
        text = 'Plan: [{"description": "Handle ] and } in input", "id": "x"}] trailing'

        assert extract_json_payload(text) == [{"description": "Handle ] and } in input", "id": "x"}]

    def test_skips_unparseable_span(self) -> None:
        """Test that an invalid first span falls through to a later valid one."""
        text = 'Options [a, b] then {"tasks": [{"description": "x"}]}'

        assert extract_json_payload(text) == {"tasks": [{"description": "x"}]}

    def test_object(self) -> None:
        """Test that an object is returned when it comes first."""
        assert extract_json_payload('{"description": "only"}') == {"description": "only"}

    @pytest.mark.parametrize("text", ["", "no json here", "[unterminated", "{'single': 'quotes'}"])
    def test_nothing_parses(self, text: str) -> None:
        """Test inputs without any parseable span."""
        assert extract_json_payload(text) is None


# =============================================================================
# SHAPE VALIDATION TESTS
# =============================================================================


class TestParseSynthesizedTasks:
    """Tests for parse_synthesized_tasks()."""

    def test_list_of_tasks(self) -> None:
        """Test the common list shape with camelCase keys."""
        tasks = parse_synthesized_tasks(
            [
                {
                    "id": "task_1",
                    "description": "Create model",
                    "type": "code",
                    "filePath": "models.py",
                    "validationCommand": "python -m py_compile models.py",
                },
                {"id": "task_2", "description": "Run tests", "type": "command", "dependencies": ["task_1"]},
            ]
        )

        assert len(tasks) == 2
        assert tasks[0].file_path == "models.py"
        assert tasks[0].validation_command == "python -m py_compile models.py"
        assert tasks[1].dependencies == ["task_1"]

    def test_tasks_wrapper(self) -> None:
        """Test an object wrapping a task list."""
        tasks = parse_synthesized_tasks({"tasks": [{"description": "Only task"}]})

        assert [t.description for t in tasks] == ["Only task"]

    def test_single_object(self) -> None:
        """Test a lone task object."""
        assert len(parse_synthesized_tasks({"description": "Lone"})) == 1

    def test_malformed_entries_dropped(self) -> None:
        """Test that invalid entries are dropped, valid ones kept."""
        tasks = parse_synthesized_tasks(
            [
                "not an object",
                {"id": "no-description"},
                {"description": "   "},
                {"description": "Valid", "dependencies": "task_1"},
                {"description": "Numbers", "id": 3, "dependencies": [1, None, "2"]},
            ]
        )

        assert [t.description for t in tasks] == ["Valid", "Numbers"]
        assert tasks[0].dependencies == ["task_1"]
        assert tasks[1].id == "3"
        assert tasks[1].dependencies == ["1", "2"]

    def test_scalar_payload(self) -> None:
        """Test that scalars yield nothing."""
        assert parse_synthesized_tasks(42) == []
        assert parse_synthesized_tasks([]) == []

    def test_extra_keys_ignored(self) -> None:
        """Test that unknown keys do not invalidate an entry."""
        task = SynthesizedTask.model_validate({"description": "x", "assignedAgent": "coder"})

        assert task.description == "x"


# =============================================================================
# ANTHROPIC SYNTHESIZER TESTS
# =============================================================================


@pytest.fixture
def mock_anthropic_client() -> MagicMock:
    """Provide a mock AsyncAnthropic client."""
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text='[{"description": "Plan step"}]')]
        )
    )
    return client


class TestAnthropicSynthesizer:
    """Tests for AnthropicSynthesizer."""

    @pytest.mark.asyncio
    async def test_synthesize_uses_planning_prompt(self, mock_anthropic_client: MagicMock) -> None:
        """Test the open-ended prompt and model settings."""
        settings = Settings(anthropic_api_key=SecretStr("sk-test"), dagwright_max_tokens=1000)
        synthesizer = AnthropicSynthesizer(settings=settings, client=mock_anthropic_client)

        text = await synthesizer.synthesize(SynthesisRequest(query="Add a health endpoint"))

        assert text == '[{"description": "Plan step"}]'
        kwargs = mock_anthropic_client.messages.create.await_args.kwargs
        assert kwargs["model"] == settings.dagwright_model
        assert kwargs["max_tokens"] == 1000
        prompt = kwargs["messages"][0]["content"]
        assert "senior technical project manager" in prompt
        assert "Add a health endpoint" in prompt

    @pytest.mark.asyncio
    async def test_complex_strategy_uses_architect_prompt(self, mock_anthropic_client: MagicMock) -> None:
        """Test that complex modifications get the granular prompt."""
        synthesizer = AnthropicSynthesizer(settings=Settings(), client=mock_anthropic_client)

        await synthesizer.synthesize(
            SynthesisRequest(query="refactor storage", strategy=PlanStrategy.COMPLEX_MODIFICATION)
        )

        prompt = mock_anthropic_client.messages.create.await_args.kwargs["messages"][0]["content"]
        assert "senior software architect" in prompt

    @pytest.mark.asyncio
    async def test_complete_joins_text_blocks(self, mock_anthropic_client: MagicMock) -> None:
        """Test that only text blocks are returned."""
        mock_anthropic_client.messages.create.return_value = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="print("),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="'hi')"),
            ]
        )
        synthesizer = AnthropicSynthesizer(settings=Settings(), client=mock_anthropic_client)

        assert await synthesizer.complete("write hi", max_tokens=50) == "print('hi')"
        assert mock_anthropic_client.messages.create.await_args.kwargs["max_tokens"] == 50
