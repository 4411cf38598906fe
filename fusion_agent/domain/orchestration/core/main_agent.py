from typing import TypedDict, Annotated, Any, Awaitable, Callable, Dict, List, Optional, Protocol
from datetime import datetime, timezone
import asyncio
import operator
import time

from langchain_core.messages import BaseMessage, HumanMessage
from langgraph.graph import StateGraph, END
import structlog

from fusion_agent.domain.context.context_retriever import ContextRetriever
from fusion_agent.domain.context.memory.session_memory_store import SessionMemoryStore
from fusion_agent.domain.context.prompt_assembler import PromptAssembler
from fusion_agent.domain.errors import DependencyDegraded, ProcessingFailure, ValidationError
from fusion_agent.domain.models.agent_state import (
    AgentContext, AgentResponse, DependencyStatus, MemorySnapshotEntry,
    PipelineStage, PluginUsage, StagePolicy, StageResult, UsedChunk
)
from fusion_agent.domain.models.documents import RetrievedResult
from fusion_agent.domain.models.memory import MessageRole
from fusion_agent.domain.models.plugins import PluginOutcome
from fusion_agent.domain.tool.tool_registry import PluginRegistry
from fusion_agent.infrastructure.observability.langfuse_tracing import observe, tag_current_trace
from fusion_agent.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

FALLBACK_REPLY = (
    'I understand you asked: "{message}". Based on the available context, I can provide '
    "some information, but I'm currently experiencing technical difficulties with my AI "
    "generation capabilities."
)

# Failures upstream of prompt assembly abort the request; retrieval, plugins
# and generation degrade to a default and the request carries on.
STAGE_POLICIES: Dict[PipelineStage, StagePolicy] = {
    PipelineStage.MEMORY_USER: StagePolicy.ABORT,
    PipelineStage.PLUGINS: StagePolicy.DEGRADE,
    PipelineStage.RETRIEVAL: StagePolicy.DEGRADE,
    PipelineStage.PROMPT: StagePolicy.ABORT,
    PipelineStage.GENERATION: StagePolicy.DEGRADE,
    PipelineStage.MEMORY_ASSISTANT: StagePolicy.ABORT,
    PipelineStage.RESPONSE: StagePolicy.ABORT,
}


class LanguageModel(Protocol):
    async def complete(self, messages: List[BaseMessage]) -> str: ...


class WorkflowState(TypedDict, total=False):
    """State for the request graph"""
    session_id: str
    message: str
    memory_summary: str
    plugin_outcomes: List[PluginOutcome]
    retrieved: List[RetrievedResult]
    context: AgentContext
    prompt: str
    reply: str
    generation_degraded: bool
    response: AgentResponse
    stage_trace: Annotated[List[str], operator.add]


class AgentOrchestrator:
    """Runs one chat request through memory, plugins, retrieval and generation.

    Graph: record_user_message -> (dispatch_plugins | retrieve_documents)
    -> build_prompt -> generate_reply -> record_assistant_message
    -> build_response. Plugins and retrieval run concurrently and both
    finish before the prompt is built.
    """

    def __init__(
        self,
        memory: SessionMemoryStore,
        plugins: PluginRegistry,
        retriever: ContextRetriever,
        assembler: Optional[PromptAssembler] = None,
        llm: Optional[LanguageModel] = None,
        summary_message_count: int = 2,
        max_search_results: int = 3,
        similarity_threshold: float = 0.5,
        llm_timeout_seconds: float = 30.0,
        max_message_length: int = 1000
    ):
        self.memory = memory
        self.plugins = plugins
        self.retriever = retriever
        self.assembler = assembler or PromptAssembler()
        self.llm = llm
        self.summary_message_count = summary_message_count
        self.max_search_results = max_search_results
        self.similarity_threshold = similarity_threshold
        self.llm_timeout_seconds = llm_timeout_seconds
        self.max_message_length = max_message_length
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the request graph"""

        workflow = StateGraph(WorkflowState)

        workflow.add_node("record_user_message", self.record_user_message_node)
        workflow.add_node("dispatch_plugins", self.plugin_dispatch_node)
        workflow.add_node("retrieve_documents", self.retrieval_node)
        workflow.add_node("build_prompt", self.prompt_node)
        workflow.add_node("generate_reply", self.generation_node)
        workflow.add_node("record_assistant_message", self.record_assistant_message_node)
        workflow.add_node("build_response", self.response_node)

        workflow.set_entry_point("record_user_message")

        # Fan out to the independent context sources, join before the prompt
        workflow.add_edge("record_user_message", "dispatch_plugins")
        workflow.add_edge("record_user_message", "retrieve_documents")
        workflow.add_edge(["dispatch_plugins", "retrieve_documents"], "build_prompt")

        workflow.add_edge("build_prompt", "generate_reply")
        workflow.add_edge("generate_reply", "record_assistant_message")
        workflow.add_edge("record_assistant_message", "build_response")
        workflow.add_edge("build_response", END)

        return workflow.compile()

    # Stage execution

    async def _run_stage(
        self,
        stage: PipelineStage,
        session_id: str,
        operation: Callable[[], Awaitable[Any]],
        default: Any = None
    ) -> StageResult:
        """Run a stage and apply its failure policy"""

        started = time.perf_counter()
        try:
            value = await operation()
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000

            if STAGE_POLICIES[stage] is StagePolicy.ABORT:
                agent_logger.log_stage_transition(session_id, stage.value, "aborted", duration_ms, str(e))
                logger.error(
                    "Agent processing failed",
                    session_id=session_id,
                    stage=stage.value,
                    error=str(e),
                    timestamp=datetime.now(timezone.utc).isoformat()
                )
                raise ProcessingFailure(
                    f"Failed to process message at stage {stage.value}",
                    session_id=session_id,
                    stage=stage.value
                ) from e

            degraded = DependencyDegraded(stage.value, e, session_id=session_id)
            agent_logger.log_stage_transition(session_id, stage.value, "degraded", duration_ms, degraded.message)
            metrics.increment_counter(f"stage.{stage.value}.degraded")
            return StageResult(stage=stage, value=default, error=degraded.message, degraded=True, duration_ms=duration_ms)

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency(f"stage.{stage.value}", duration_ms)
        agent_logger.log_stage_transition(session_id, stage.value, "ok", duration_ms)
        return StageResult(stage=stage, value=value, duration_ms=duration_ms)

    # Graph nodes

    async def record_user_message_node(self, state: WorkflowState) -> Dict[str, Any]:
        session_id = state["session_id"]

        async def record():
            await self.memory.append(session_id, MessageRole.USER, state["message"])
            summary = await self.memory.summarize(session_id, self.summary_message_count)
            return self.assembler.format_memory(summary)

        result = await self._run_stage(PipelineStage.MEMORY_USER, session_id, record)
        return {"memory_summary": result.value, "stage_trace": [PipelineStage.MEMORY_USER.value]}

    async def plugin_dispatch_node(self, state: WorkflowState) -> Dict[str, Any]:
        result = await self._run_stage(
            PipelineStage.PLUGINS,
            state["session_id"],
            lambda: self.plugins.dispatch(state["message"]),
            default=[]
        )
        return {"plugin_outcomes": result.value, "stage_trace": [PipelineStage.PLUGINS.value]}

    async def retrieval_node(self, state: WorkflowState) -> Dict[str, Any]:
        result = await self._run_stage(
            PipelineStage.RETRIEVAL,
            state["session_id"],
            lambda: self.retriever.search(
                state["message"],
                max_results=self.max_search_results,
                similarity_threshold=self.similarity_threshold
            ),
            default=[]
        )
        return {"retrieved": result.value, "stage_trace": [PipelineStage.RETRIEVAL.value]}

    async def prompt_node(self, state: WorkflowState) -> Dict[str, Any]:
        async def build():
            context = AgentContext(
                session_id=state["session_id"],
                user_message=state["message"],
                memory_summary=state["memory_summary"],
                retrieved=state.get("retrieved", []),
                plugin_outcomes=state.get("plugin_outcomes", [])
            )
            prompt = self.assembler.render(
                context.user_message,
                context.memory_summary,
                context.retrieved,
                context.plugin_outcomes
            )
            return context, prompt

        result = await self._run_stage(PipelineStage.PROMPT, state["session_id"], build)
        context, prompt = result.value
        return {"context": context, "prompt": prompt, "stage_trace": [PipelineStage.PROMPT.value]}

    async def generation_node(self, state: WorkflowState) -> Dict[str, Any]:
        async def generate():
            if self.llm is None:
                raise RuntimeError("No language model configured")
            reply = await asyncio.wait_for(
                self.llm.complete([HumanMessage(content=state["prompt"])]),
                timeout=self.llm_timeout_seconds
            )
            if not reply or not reply.strip():
                raise ValueError("Language model returned an empty reply")
            return reply

        result = await self._run_stage(
            PipelineStage.GENERATION,
            state["session_id"],
            generate,
            default=FALLBACK_REPLY.format(message=state["message"])
        )
        return {
            "reply": result.value,
            "generation_degraded": result.degraded,
            "stage_trace": [PipelineStage.GENERATION.value]
        }

    async def record_assistant_message_node(self, state: WorkflowState) -> Dict[str, Any]:
        await self._run_stage(
            PipelineStage.MEMORY_ASSISTANT,
            state["session_id"],
            lambda: self.memory.append(state["session_id"], MessageRole.ASSISTANT, state["reply"])
        )
        return {"stage_trace": [PipelineStage.MEMORY_ASSISTANT.value]}

    async def response_node(self, state: WorkflowState) -> Dict[str, Any]:
        session_id = state["session_id"]

        async def build():
            snapshot = await self.memory.snapshot(session_id)
            context: AgentContext = state["context"]
            return AgentResponse(
                reply=state["reply"],
                used_chunks=[UsedChunk.from_result(r) for r in context.retrieved],
                plugins_used=[PluginUsage.from_outcome(o) for o in context.plugin_outcomes],
                memory_snapshot=[MemorySnapshotEntry.from_message(m) for m in snapshot],
                session_id=session_id
            )

        result = await self._run_stage(PipelineStage.RESPONSE, session_id, build)
        return {"response": result.value, "stage_trace": [PipelineStage.RESPONSE.value]}

    # Entry points

    def validate_request(self, session_id: str, message: str) -> None:
        """Reject malformed requests before any state is touched"""

        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("Session ID is required", session_id=session_id or None)
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Message cannot be empty", session_id=session_id)
        if len(message) > self.max_message_length:
            raise ValidationError(
                f"Message too long (max {self.max_message_length} characters)",
                session_id=session_id
            )

    @observe(name="agent_process", capture_input=False)
    async def process(self, session_id: str, message: str) -> AgentResponse:
        """Process a message through the request graph"""

        self.validate_request(session_id, message)
        tag_current_trace(session_id, {"message_length": len(message)})

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            logger.info("Processing message", message_length=len(message))

            initial_state: WorkflowState = {
                "session_id": session_id,
                "message": message,
                "stage_trace": [PipelineStage.RECEIVED.value]
            }

            try:
                final_state = await self.workflow.ainvoke(initial_state)
            except ProcessingFailure:
                raise
            except Exception as e:
                logger.error("Agent workflow failed", error=str(e))
                raise ProcessingFailure("Failed to process message", session_id=session_id) from e

            response: AgentResponse = final_state["response"]
            metrics.record_latency("agent.process", (time.perf_counter() - started) * 1000)
            logger.info(
                "Agent response generated",
                chunks=len(response.used_chunks),
                plugins=len(response.plugins_used),
                degraded=final_state.get("generation_degraded", False),
                trace=final_state.get("stage_trace", [])
            )
            return response

    async def health(self) -> Dict[str, DependencyStatus]:
        """Per-dependency status for the health endpoint"""

        statuses: Dict[str, DependencyStatus] = {}

        try:
            await self.memory.stats()
            statuses["memory"] = DependencyStatus.OK
        except Exception:
            statuses["memory"] = DependencyStatus.ERROR

        index_ok = False
        health_check = getattr(self.retriever.backend, "health_check", None)
        if health_check is not None:
            try:
                index_ok = bool(await health_check())
            except Exception as e:
                logger.warning("Index health check failed", error=str(e))
        statuses["retrieval-index"] = DependencyStatus.OK if index_ok else DependencyStatus.ERROR

        statuses["plugins"] = DependencyStatus.OK if self.plugins.plugins else DependencyStatus.ERROR

        llm_ok = self.llm is not None and getattr(self.llm, "is_available", True)
        statuses["language-model"] = DependencyStatus.OK if llm_ok else DependencyStatus.ERROR

        return statuses
