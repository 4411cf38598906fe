from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from fusion_agent.application.api.route import agent, health, rag
from fusion_agent.application.runtime import AgentRuntime
from fusion_agent.domain.errors import AgentError, ProcessingFailure, ValidationError
from fusion_agent.domain.models.agent_state import AgentResponse
from fusion_agent.infrastructure.config.settings import Settings, get_settings
from fusion_agent.infrastructure.observability.langfuse_tracing import configure_tracing
from fusion_agent.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)

PROCESSING_ERROR_REPLY = "Sorry, I encountered an error processing your message."


def _error_envelope(status_code: int, reply: str, error: AgentError) -> JSONResponse:
    """Full agent response shape, so callers can treat every reply alike"""

    body = AgentResponse.error_envelope(error.session_id or "unknown", reply).model_dump(mode="json")
    body["error"] = error.to_dict()
    return JSONResponse(status_code=status_code, content=body)


def _request_body_error(exc: RequestValidationError) -> ValidationError:
    session_id = exc.body.get("session_id") if isinstance(exc.body, dict) else None
    errors = [{k: v for k, v in e.items() if k not in ("ctx", "url")} for e in exc.errors()]
    return ValidationError(
        "Invalid request body",
        session_id=session_id if isinstance(session_id, str) else None,
        details={"errors": jsonable_encoder(errors)}
    )


def create_app(settings: Optional[Settings] = None, runtime: Optional[AgentRuntime] = None) -> FastAPI:
    """Build the HTTP application around an agent runtime"""

    settings = settings or (runtime.settings if runtime else get_settings())

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        service_name=settings.service_name,
        version=settings.version,
        environment=settings.environment
    )
    configure_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run the runtime's background tasks for the lifetime of the server"""
        await app.state.runtime.start()
        logger.info("Agent server started", version=settings.version)
        yield
        await app.state.runtime.stop()
        logger.info("Agent server shutdown")

    app = FastAPI(title="Fusion Agent Server", version=settings.version, lifespan=lifespan)
    app.state.runtime = runtime or AgentRuntime(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin] if settings.cors_origin != "*" else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(agent.router)
    app.include_router(rag.router)
    app.include_router(health.router)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info("Rejected invalid request", path=request.url.path, error=exc.message)
        return _error_envelope(400, exc.message, exc)

    @app.exception_handler(RequestValidationError)
    async def request_body_error_handler(request: Request, exc: RequestValidationError):
        # Agent routes answer with the envelope, the others keep the 422 default
        if not request.url.path.startswith("/agent/"):
            return await request_validation_exception_handler(request, exc)
        error = _request_body_error(exc)
        logger.info("Rejected invalid request", path=request.url.path, error=error.message)
        return _error_envelope(400, error.message, error)

    @app.exception_handler(ProcessingFailure)
    async def processing_failure_handler(request: Request, exc: ProcessingFailure):
        logger.error(
            "Agent message processing failed",
            session_id=exc.session_id,
            stage=exc.stage,
            timestamp=exc.timestamp
        )
        return _error_envelope(500, PROCESSING_ERROR_REPLY, exc)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
