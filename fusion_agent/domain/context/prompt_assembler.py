from typing import Callable, Dict, List
import json

from fusion_agent.domain.models.documents import RetrievedResult
from fusion_agent.domain.models.memory import MemorySummary
from fusion_agent.domain.models.plugins import MathResult, PluginOutcome, PluginPayload, WeatherResult

PROMPT_PREAMBLE = (
    "You are a helpful AI assistant with access to conversation memory, "
    "document knowledge, and plugin capabilities."
)

PROMPT_INSTRUCTIONS = """- You are a knowledgeable AI assistant with expertise in various topics
- Provide comprehensive, confident responses using your general knowledge
- When documents contain relevant information, use it to enhance your response with specific details and examples
- Always cite sources when using document information (e.g., "According to [filename]...")
- When plugin results are available, incorporate them naturally into your response
- For weather queries, provide a friendly summary of the weather data
- For math queries, confirm the calculation and provide the result clearly
- Only say "I don't have enough information" for very specific or technical questions you truly cannot answer
- Be helpful, informative, and confident in your responses"""

NO_HISTORY = "No previous conversation history."
NO_DOCUMENTS = "No relevant documents found."
NO_PLUGINS = "No plugins were used."

PayloadFormatter = Callable[[PluginPayload], List[str]]


def _format_math(payload: MathResult) -> List[str]:
    return [
        f"Expression: {payload.expression}",
        f"Result: {payload.result}",
    ]


def _format_weather(payload: WeatherResult) -> List[str]:
    lines = [
        f"Location: {payload.location}",
        f"Temperature: {payload.temperature:g}°C",
        f"Condition: {payload.condition}",
    ]
    if payload.humidity is not None:
        lines.append(f"Humidity: {payload.humidity}%")
    if payload.wind_speed is not None:
        lines.append(f"Wind Speed: {payload.wind_speed:g} km/h")
    if payload.source == "synthetic":
        lines.append("Note: synthetic data, no live weather source configured")
    return lines


def _format_generic(payload: PluginPayload) -> List[str]:
    data = payload.model_dump(exclude={"kind"})
    return [json.dumps(data, sort_keys=True, default=str)]


class PromptAssembler:
    """Renders memory, documents and plugin results into one prompt.

    Output depends only on the arguments: the section order and the
    instruction block are fixed.
    """

    def __init__(self):
        self._formatters: Dict[str, PayloadFormatter] = {
            "math": _format_math,
            "weather": _format_weather,
        }

    def register_formatter(self, kind: str, formatter: PayloadFormatter) -> None:
        """Format payloads of a new plugin kind"""
        self._formatters[kind] = formatter

    @staticmethod
    def format_memory(summary: MemorySummary) -> str:
        if not summary.last_messages:
            return NO_HISTORY

        lines = [f"{message.role.value}: {message.content}" for message in summary.last_messages]
        return f"Previous conversation (last {len(lines)} messages):\n" + "\n".join(lines)

    def render(
        self,
        user_message: str,
        memory_summary: str,
        retrieved: List[RetrievedResult],
        outcomes: List[PluginOutcome]
    ) -> str:
        sections = [
            PROMPT_PREAMBLE,
            "## CONVERSATION MEMORY\n" + (memory_summary or NO_HISTORY),
            "## DOCUMENT CONTEXT\n" + self._render_documents(retrieved),
            "## PLUGIN RESULTS\n" + self._render_plugins(outcomes),
            "## USER MESSAGE\n" + user_message,
            "## INSTRUCTIONS\n" + PROMPT_INSTRUCTIONS,
            "## RESPONSE\n",
        ]
        return "\n\n".join(sections)

    def _render_documents(self, retrieved: List[RetrievedResult]) -> str:
        if not retrieved:
            return NO_DOCUMENTS

        return "\n\n".join(
            f"{index}. Source: {result.chunk.source}\nContent: {result.chunk.content}"
            for index, result in enumerate(retrieved, start=1)
        )

    def _render_plugins(self, outcomes: List[PluginOutcome]) -> str:
        if not outcomes:
            return NO_PLUGINS

        entries = []
        for index, outcome in enumerate(outcomes, start=1):
            label = f"{outcome.name.upper()} Plugin"
            if not outcome.success:
                entries.append(f"{index}. {label}: Failed - {outcome.error}")
                continue

            formatter = self._formatters.get(outcome.data.kind, _format_generic)
            details = "\n".join(f"   {line}" for line in formatter(outcome.data))
            entries.append(f"{index}. {label}:\n{details}")

        return "\n".join(entries)
