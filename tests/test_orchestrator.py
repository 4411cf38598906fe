"""
Tests for the agent request pipeline
"""

import asyncio
from typing import List
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import FakeSearchBackend, make_chunk
from fusion_agent.domain.context.context_retriever import ContextRetriever
from fusion_agent.domain.context.memory.session_memory_store import SessionMemoryStore
from fusion_agent.domain.errors import ProcessingFailure, ValidationError
from fusion_agent.domain.models.agent_state import DependencyStatus
from fusion_agent.domain.models.documents import ScoredChunk
from fusion_agent.domain.models.memory import MessageRole
from fusion_agent.domain.orchestration.core.main_agent import FALLBACK_REPLY, AgentOrchestrator
from fusion_agent.domain.tool.plugins.math_plugin import MathPlugin
from fusion_agent.domain.tool.plugins.weather_plugin import WeatherPlugin
from fusion_agent.domain.tool.tool_registry import PluginRegistry


class FakeLLM:
    def __init__(self, reply: str = "The answer is 12.", error: Exception = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, messages) -> str:
        self.prompts.append(messages[-1].content)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class BrokenMemory(SessionMemoryStore):
    """Memory store whose writes fail for one role"""

    def __init__(self, failing_role: MessageRole):
        super().__init__()
        self.failing_role = failing_role

    async def append(self, session_id, role, content):
        if MessageRole(role) == self.failing_role:
            raise RuntimeError("memory backend offline")
        return await super().append(session_id, role, content)


def _registry() -> PluginRegistry:
    registry = PluginRegistry()
    registry.register(WeatherPlugin())
    registry.register(MathPlugin())
    return registry


def _orchestrator(memory=None, backend=None, llm=None, **kwargs) -> AgentOrchestrator:
    return AgentOrchestrator(
        memory=memory or SessionMemoryStore(),
        plugins=_registry(),
        retriever=ContextRetriever(backend or FakeSearchBackend()),
        llm=llm,
        **kwargs
    )


class TestProcess:
    async def test_math_question_end_to_end(self):
        llm = FakeLLM()
        agent = _orchestrator(llm=llm)

        response = await agent.process("s1", "What is 4*3?")

        assert response.reply == "The answer is 12."
        assert response.session_id == "s1"
        assert response.used_chunks == []
        assert len(response.plugins_used) == 1
        assert response.plugins_used[0].name == "math"
        assert response.plugins_used[0].success
        assert response.plugins_used[0].data["result"] == 12
        assert [e.role for e in response.memory_snapshot] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert response.memory_snapshot[0].content == "What is 4*3?"
        assert "Expression: 4*3" in llm.prompts[0]
        assert "Result: 12" in llm.prompts[0]

    async def test_retrieved_chunks_are_reported_and_prompted(self):
        backend = FakeSearchBackend(hits=[
            ScoredChunk(chunk=make_chunk("RAG combines retrieval with generation", source="rag.md"), score=0.8),
            ScoredChunk(chunk=make_chunk("unrelated", source="x.md"), score=0.2),
        ])
        llm = FakeLLM(reply="RAG is retrieval augmented generation.")
        agent = _orchestrator(backend=backend, llm=llm, similarity_threshold=0.5)

        response = await agent.process("s1", "Explain RAG")

        assert [c.source for c in response.used_chunks] == ["rag.md"]
        assert response.used_chunks[0].score == 0.8
        assert response.plugins_used == []
        assert "1. Source: rag.md\nContent: RAG combines retrieval with generation" in llm.prompts[0]

    async def test_history_is_summarized_into_prompt(self):
        llm = FakeLLM(reply="ok")
        agent = _orchestrator(llm=llm)

        await agent.process("s1", "first question")
        await agent.process("s1", "second question")

        assert "assistant: ok" in llm.prompts[1]
        assert "user: second question" in llm.prompts[1]

    async def test_sessions_are_isolated(self):
        agent = _orchestrator(llm=FakeLLM())

        await agent.process("a", "hello")
        response = await agent.process("b", "hi")

        assert [e.content for e in response.memory_snapshot] == ["hi", "The answer is 12."]

    async def test_retrieval_uses_configured_limits(self):
        retriever = Mock(spec=ContextRetriever)
        retriever.search = AsyncMock(return_value=[])
        agent = AgentOrchestrator(
            memory=SessionMemoryStore(),
            plugins=_registry(),
            retriever=retriever,
            llm=FakeLLM(),
            max_search_results=5,
            similarity_threshold=0.4
        )

        await agent.process("s1", "hello")

        retriever.search.assert_awaited_once_with("hello", max_results=5, similarity_threshold=0.4)


class TestDegradation:
    async def test_llm_failure_uses_fallback_reply(self):
        memory = SessionMemoryStore()
        agent = _orchestrator(memory=memory, llm=FakeLLM(error=RuntimeError("quota exceeded")))

        response = await agent.process("s1", "hello there")

        expected = FALLBACK_REPLY.format(message="hello there")
        assert response.reply == expected
        assert response.memory_snapshot[-1].role == MessageRole.ASSISTANT
        assert response.memory_snapshot[-1].content == expected

    async def test_missing_llm_uses_fallback_reply(self):
        response = await _orchestrator(llm=None).process("s1", "hello")

        assert response.reply.startswith('I understand you asked: "hello".')

    async def test_llm_timeout_uses_fallback_reply(self):
        agent = _orchestrator(llm=FakeLLM(delay=1), llm_timeout_seconds=0.01)

        response = await agent.process("s1", "hello")

        assert response.reply == FALLBACK_REPLY.format(message="hello")

    async def test_empty_llm_reply_uses_fallback(self):
        response = await _orchestrator(llm=FakeLLM(reply="   ")).process("s1", "hello")

        assert response.reply == FALLBACK_REPLY.format(message="hello")

    async def test_search_failure_yields_no_chunks(self):
        agent = _orchestrator(backend=FakeSearchBackend(error=ConnectionError("down")), llm=FakeLLM(reply="ok"))

        response = await agent.process("s1", "What is 2+2?")

        assert response.reply == "ok"
        assert response.used_chunks == []
        assert response.plugins_used[0].data["result"] == 4

    async def test_plugin_failure_is_reported_not_raised(self):
        response = await _orchestrator(llm=FakeLLM(reply="ok")).process("s1", "compute 1 / 0")

        assert response.reply == "ok"
        assert not response.plugins_used[0].success
        assert "Division by zero" in response.plugins_used[0].error


class TestAbort:
    async def test_user_memory_failure_aborts(self):
        llm = FakeLLM()
        agent = _orchestrator(memory=BrokenMemory(MessageRole.USER), llm=llm)

        with pytest.raises(ProcessingFailure) as exc_info:
            await agent.process("s1", "hello")

        assert exc_info.value.stage == "memory_user"
        assert exc_info.value.session_id == "s1"
        assert llm.prompts == []

    async def test_assistant_memory_failure_aborts(self):
        agent = _orchestrator(memory=BrokenMemory(MessageRole.ASSISTANT), llm=FakeLLM())

        with pytest.raises(ProcessingFailure) as exc_info:
            await agent.process("s1", "hello")

        assert exc_info.value.stage == "memory_assistant"


class TestValidation:
    @pytest.mark.parametrize("session_id,message", [
        ("", "hello"),
        ("   ", "hello"),
        ("s1", ""),
        ("s1", "   "),
        ("s1", "x" * 1001),
    ])
    async def test_invalid_requests_are_rejected_without_side_effects(self, session_id, message):
        memory = SessionMemoryStore()
        agent = _orchestrator(memory=memory, llm=FakeLLM())

        with pytest.raises(ValidationError):
            await agent.process(session_id, message)

        assert (await memory.stats()).session_count == 0

    async def test_message_at_limit_is_accepted(self):
        response = await _orchestrator(llm=FakeLLM(reply="ok"), max_message_length=10).process("s1", "x" * 10)

        assert response.reply == "ok"


class TestHealth:
    async def test_reports_dependencies(self):
        statuses = await _orchestrator(llm=FakeLLM()).health()

        assert statuses == {
            "memory": DependencyStatus.OK,
            "retrieval-index": DependencyStatus.OK,
            "plugins": DependencyStatus.OK,
            "language-model": DependencyStatus.OK,
        }

    async def test_reports_missing_llm_and_broken_index(self):
        agent = _orchestrator(backend=FakeSearchBackend(error=RuntimeError("x")), llm=None)

        statuses = await agent.health()

        assert statuses["retrieval-index"] is DependencyStatus.ERROR
        assert statuses["language-model"] is DependencyStatus.ERROR
