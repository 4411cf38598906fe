# Langfuse integration
from typing import Dict, Any, Optional

import structlog
from langfuse.decorators import langfuse_context, observe

from fusion_agent.infrastructure.config.settings import Settings

logger = structlog.get_logger(__name__)

__all__ = ["configure_tracing", "tag_current_trace", "observe"]


def configure_tracing(settings: Settings) -> bool:
    """Enable langfuse tracing when credentials are configured, disable it otherwise"""

    if not settings.tracing_enabled:
        langfuse_context.configure(enabled=False)
        logger.info("Langfuse tracing disabled", reason="no credentials")
        return False

    langfuse_context.configure(
        public_key=settings.langfuse_public_key,
        secret_key=settings.langfuse_secret_key,
        host=settings.langfuse_host,
        enabled=True,
    )
    logger.info("Langfuse tracing enabled", host=settings.langfuse_host)
    return True


def tag_current_trace(session_id: str, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Attach session metadata to the trace opened by the surrounding @observe call"""

    try:
        langfuse_context.update_current_trace(
            session_id=session_id,
            tags=["agent", "rag"],
            metadata=metadata or {},
        )
    except Exception as e:
        # Tracing never affects request handling
        logger.debug("Failed to tag langfuse trace", error=str(e))
