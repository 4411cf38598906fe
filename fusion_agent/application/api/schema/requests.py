from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone

from fusion_agent.domain.models.agent_state import UsedChunk


class AgentRequest(BaseModel):
    """Chat message sent to the agent"""
    session_id: str = Field(min_length=1, description="Session identifier")
    message: str = Field(min_length=1, description="User message")


class SearchRequest(BaseModel):
    """Direct document search"""
    query: str = Field(min_length=1)
    max_results: Optional[int] = Field(None, ge=1, le=50)
    similarity_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)


class SearchResponse(BaseModel):
    query: str
    results: List[UsedChunk] = Field(default_factory=list)
    count: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OperationResponse(BaseModel):
    """Acknowledgement for maintenance operations"""
    success: bool = True
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
