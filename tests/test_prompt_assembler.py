"""
Tests for prompt rendering
"""

from datetime import datetime, timezone

from conftest import make_chunk
from fusion_agent.domain.context.prompt_assembler import (
    NO_DOCUMENTS, NO_HISTORY, NO_PLUGINS, PROMPT_INSTRUCTIONS, PromptAssembler
)
from fusion_agent.domain.models.documents import RetrievedResult
from fusion_agent.domain.models.memory import MemorySummary, Message, MessageRole
from fusion_agent.domain.models.plugins import GenericPluginResult, MathResult, PluginOutcome, WeatherResult

SECTION_HEADERS = [
    "## CONVERSATION MEMORY",
    "## DOCUMENT CONTEXT",
    "## PLUGIN RESULTS",
    "## USER MESSAGE",
    "## INSTRUCTIONS",
    "## RESPONSE",
]


def _positions(prompt: str):
    return [prompt.index(header) for header in SECTION_HEADERS]


class TestRender:
    def test_empty_context_uses_placeholders(self):
        prompt = PromptAssembler().render("hello", "", [], [])

        assert NO_HISTORY in prompt
        assert NO_DOCUMENTS in prompt
        assert NO_PLUGINS in prompt
        assert PROMPT_INSTRUCTIONS in prompt
        assert prompt.endswith("## RESPONSE\n")
        assert _positions(prompt) == sorted(_positions(prompt))

    def test_sections_and_entries(self):
        retrieved = [
            RetrievedResult(chunk=make_chunk("Paris is in France", source="geo.md"), score=0.9, rank=1),
            RetrievedResult(chunk=make_chunk("Lyon too", source="geo2.md"), score=0.8, rank=2),
        ]
        outcomes = [
            PluginOutcome.ok("math", "4*3", MathResult(expression="4*3", result=12)),
            PluginOutcome.failed("weather", "Atlantis", "City not found"),
        ]

        prompt = PromptAssembler().render("What is 4*3?", "user: hi", retrieved, outcomes)

        assert "## CONVERSATION MEMORY\nuser: hi" in prompt
        assert "1. Source: geo.md\nContent: Paris is in France" in prompt
        assert "2. Source: geo2.md\nContent: Lyon too" in prompt
        assert "1. MATH Plugin:\n   Expression: 4*3\n   Result: 12" in prompt
        assert "2. WEATHER Plugin: Failed - City not found" in prompt
        assert "## USER MESSAGE\nWhat is 4*3?" in prompt
        assert _positions(prompt) == sorted(_positions(prompt))

    def test_render_is_deterministic(self):
        outcome = PluginOutcome.ok("math", "1+1", MathResult(expression="1+1", result=2))
        assembler = PromptAssembler()

        assert assembler.render("m", "s", [], [outcome]) == assembler.render("m", "s", [], [outcome])

    def test_synthetic_weather_is_labelled(self):
        weather = WeatherResult(
            location="Oslo", temperature=12, condition="Rainy", humidity=70, wind_speed=9.0, source="synthetic"
        )
        prompt = PromptAssembler().render("weather in Oslo", "", [], [PluginOutcome.ok("weather", "Oslo", weather)])

        assert "   Location: Oslo" in prompt
        assert "   Temperature: 12°C" in prompt
        assert "synthetic data" in prompt

    def test_unknown_kind_falls_back_to_json(self):
        outcome = PluginOutcome.ok("lookup", "x", GenericPluginResult(kind="lookup", payload={"answer": 42}))

        prompt = PromptAssembler().render("x", "", [], [outcome])

        assert '1. LOOKUP Plugin:\n   {"payload": {"answer": 42}}' in prompt

    def test_registered_formatter_is_used(self):
        assembler = PromptAssembler()
        assembler.register_formatter("lookup", lambda payload: [f"Answer: {payload.payload['answer']}"])
        outcome = PluginOutcome.ok("lookup", "x", GenericPluginResult(kind="lookup", payload={"answer": 42}))

        assert "   Answer: 42" in assembler.render("x", "", [], [outcome])


class TestFormatMemory:
    def test_empty_summary(self):
        assert PromptAssembler.format_memory(MemorySummary()) == NO_HISTORY

    def test_lists_recent_messages(self):
        now = datetime.now(timezone.utc)
        summary = MemorySummary(
            last_messages=[
                Message(role=MessageRole.USER, content="hi", timestamp=now),
                Message(role=MessageRole.ASSISTANT, content="hello", timestamp=now),
            ],
            total_messages=5,
            session_age_minutes=3
        )

        assert PromptAssembler.format_memory(summary) == (
            "Previous conversation (last 2 messages):\nuser: hi\nassistant: hello"
        )
