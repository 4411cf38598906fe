from typing import Dict, Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from .documents import RetrievedResult
from .memory import Message, MessageRole
from .plugins import PluginOutcome

T = TypeVar("T")


class PipelineStage(str, Enum):
    """Stages of one agent request, in execution order"""
    RECEIVED = "received"
    MEMORY_USER = "memory_user"
    PLUGINS = "plugins"
    RETRIEVAL = "retrieval"
    PROMPT = "prompt"
    GENERATION = "generation"
    MEMORY_ASSISTANT = "memory_assistant"
    RESPONSE = "response"


class StagePolicy(str, Enum):
    """What the orchestrator does when a stage fails"""
    ABORT = "abort"
    DEGRADE = "degrade"


class StageResult(BaseModel, Generic[T]):
    """Value or error produced by one pipeline stage"""
    stage: PipelineStage
    value: Optional[T] = None
    error: Optional[str] = None
    degraded: bool = False
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class AgentContext(BaseModel):
    """Per-request context fused into the prompt"""
    session_id: str = Field(description="Session identifier")
    user_message: str = Field(description="Raw user message")
    memory_summary: str = Field(default="", description="Formatted memory summary")
    retrieved: List[RetrievedResult] = Field(default_factory=list)
    plugin_outcomes: List[PluginOutcome] = Field(default_factory=list)


class UsedChunk(BaseModel):
    content: str
    source: str
    score: float = Field(ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: RetrievedResult) -> "UsedChunk":
        return cls(
            content=result.chunk.content,
            source=result.chunk.source,
            score=result.score,
            metadata=dict(result.chunk.metadata),
        )


class PluginUsage(BaseModel):
    name: str
    input: str = ""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: PluginOutcome) -> "PluginUsage":
        return cls(
            name=outcome.name,
            input=outcome.input,
            success=outcome.success,
            data=outcome.data.model_dump() if outcome.data is not None else None,
            error=outcome.error,
        )


class MemorySnapshotEntry(BaseModel):
    role: MessageRole
    content: str
    timestamp: str = Field(description="ISO-8601 creation time")

    @classmethod
    def from_message(cls, message: Message) -> "MemorySnapshotEntry":
        return cls(role=message.role, content=message.content, timestamp=message.timestamp.isoformat())


class AgentResponse(BaseModel):
    """Externally visible result of one agent request"""
    reply: str
    used_chunks: List[UsedChunk] = Field(default_factory=list)
    plugins_used: List[PluginUsage] = Field(default_factory=list)
    memory_snapshot: List[MemorySnapshotEntry] = Field(default_factory=list)
    session_id: str

    @classmethod
    def error_envelope(cls, session_id: str, reply: str) -> "AgentResponse":
        """Full response shape carrying only an error reply"""
        return cls(reply=reply, session_id=session_id or "unknown")


class DependencyStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class HealthReport(BaseModel):
    status: DependencyStatus
    timestamp: datetime
    uptime_seconds: float
    version: str
    services: Dict[str, DependencyStatus]
    metrics: Dict[str, Any] = Field(default_factory=dict)
