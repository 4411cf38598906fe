"""
Error taxonomy for the agent pipeline.

ValidationError      malformed request, rejected before any state changes
DependencyDegraded   retrieval, plugin or generation failure absorbed by the pipeline
ProcessingFailure    fatal failure while building the request context
IngestionFailure     one document could not be ingested; the batch job continues
"""

from typing import Dict, Any, Optional
from datetime import datetime, timezone


class AgentError(Exception):
    """Base class for errors raised by the agent server"""

    code = "AGENT_ERROR"

    def __init__(self, message: str, session_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "session_id": self.session_id or "",
            "timestamp": self.timestamp,
            "details": self.details,
        }


class ValidationError(AgentError):
    code = "VALIDATION_ERROR"


class DependencyDegraded(AgentError):
    code = "DEPENDENCY_DEGRADED"

    def __init__(self, stage: str, cause: BaseException, session_id: Optional[str] = None):
        super().__init__(f"{stage} degraded: {cause}", session_id=session_id, details={"stage": stage})
        self.stage = stage
        self.cause = cause


class ProcessingFailure(AgentError):
    code = "PROCESSING_FAILED"

    def __init__(self, message: str, session_id: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message, session_id=session_id, details={"stage": stage} if stage else None)
        self.stage = stage


class IngestionFailure(AgentError):
    code = "INGESTION_FAILED"

    def __init__(self, source: str, cause: BaseException):
        super().__init__(f"Failed to ingest {source}: {cause}", details={"source": source})
        self.source = source
        self.cause = cause


class PluginExecutionError(AgentError):
    """Raised by a plugin that refuses to produce a result"""

    code = "PLUGIN_FAILED"


class MathEvaluationError(PluginExecutionError):
    code = "MATH_EVALUATION_FAILED"
