from typing import List

from fastapi import APIRouter, Depends

from fusion_agent.application.api.dependencies import get_runtime
from fusion_agent.application.api.schema.requests import AgentRequest, OperationResponse
from fusion_agent.application.runtime import AgentRuntime
from fusion_agent.domain.models.agent_state import AgentResponse, MemorySnapshotEntry

router = APIRouter(prefix="/agent", tags=["agent"])


@router.post("/message", response_model=AgentResponse)
async def send_message(payload: AgentRequest, runtime: AgentRuntime = Depends(get_runtime)) -> AgentResponse:
    """Run one chat turn through the agent"""
    return await runtime.orchestrator.process(payload.session_id, payload.message)


@router.get("/session/{session_id}", response_model=List[MemorySnapshotEntry])
async def get_session(session_id: str, runtime: AgentRuntime = Depends(get_runtime)):
    """Messages currently retained for a session"""

    messages = await runtime.memory.snapshot(session_id)
    return [MemorySnapshotEntry.from_message(m) for m in messages]


@router.delete("/session/{session_id}", response_model=OperationResponse)
async def clear_session(session_id: str, runtime: AgentRuntime = Depends(get_runtime)) -> OperationResponse:
    await runtime.memory.clear(session_id)
    return OperationResponse(message=f"Session '{session_id}' cleared", data={"session_id": session_id})
