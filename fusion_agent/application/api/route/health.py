from fastapi import APIRouter, Depends

from fusion_agent.application.api.dependencies import get_runtime
from fusion_agent.application.runtime import AgentRuntime
from fusion_agent.domain.models.agent_state import HealthReport

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthReport)
async def health_check(runtime: AgentRuntime = Depends(get_runtime)) -> HealthReport:
    """Health check endpoint"""
    return await runtime.health()
