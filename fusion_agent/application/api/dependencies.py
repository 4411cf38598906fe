from fastapi import Request

from fusion_agent.application.runtime import AgentRuntime


def get_runtime(request: Request) -> AgentRuntime:
    """Runtime attached to the app by create_app"""
    return request.app.state.runtime
