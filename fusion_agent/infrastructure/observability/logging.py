import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "fusion-agent",
    version: Optional[str] = None,
    environment: Optional[str] = None
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # Processors for structlog
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    # Add appropriate renderer based on format
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Configure structlog
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set service name in context
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=environment or os.getenv("ENVIRONMENT", "development"),
        version=version or os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to all log entries"""

    # Add timestamp if not present
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    # Request-scoped identifiers bound by the orchestrator
    context = structlog.contextvars.get_contextvars()
    for key in ("request_id", "session_id"):
        if key in context and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


class AgentLogger:
    """Specialized logger for agent pipeline events"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_stage_transition(
        self,
        session_id: str,
        stage: str,
        outcome: str,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None
    ):
        """Log a pipeline stage finishing (ok, degraded or aborted)"""

        self.logger.info(
            "stage_transition",
            session_id=session_id,
            stage=stage,
            outcome=outcome,
            duration_ms=duration_ms,
            error=error
        )

    def log_plugin_execution(
        self,
        plugin_name: str,
        plugin_input: str,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log plugin execution events"""

        self.logger.info(
            "plugin_execution",
            plugin_name=plugin_name,
            plugin_input=plugin_input,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_context_update(
        self,
        session_id: str,
        context_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context updates"""

        self.logger.info(
            "context_update",
            session_id=session_id,
            context_type=context_type,
            action=action,
            details=details or {}
        )

    def log_ingestion_batch(
        self,
        source: str,
        batch_number: int,
        chunk_count: int,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log one batch handed to the index sink"""

        self.logger.info(
            "ingestion_batch",
            source=source,
            batch_number=batch_number,
            chunk_count=chunk_count,
            success=success,
            error=error
        )


# Global logger instance
agent_logger = AgentLogger("fusion_agent")


class MetricsCollector:
    """Collect and export metrics"""

    def __init__(self):
        self.metrics: Dict[str, Any] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        """Record operation latency"""

        key = f"latency.{operation}"
        if key not in self.metrics:
            self.metrics[key] = {
                "count": 0,
                "sum": 0,
                "min": float('inf'),
                "max": 0
            }

        self.metrics[key]["count"] += 1
        self.metrics[key]["sum"] += duration_ms
        self.metrics[key]["min"] = min(self.metrics[key]["min"], duration_ms)
        self.metrics[key]["max"] = max(self.metrics[key]["max"], duration_ms)

        agent_logger.logger.debug(
            "metric",
            metric_type="latency",
            operation=operation,
            duration_ms=duration_ms,
            tags=tags or {}
        )

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric"""

        if name not in self.metrics:
            self.metrics[name] = 0
        self.metrics[name] += value

        agent_logger.logger.debug(
            "metric",
            metric_type="counter",
            name=name,
            value=value,
            tags=tags or {}
        )

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        """Set a gauge metric"""

        self.metrics[name] = value

        agent_logger.logger.debug(
            "metric",
            metric_type="gauge",
            name=name,
            value=value,
            tags=tags or {}
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Latencies as count/avg/min/max in milliseconds, counters and gauges as is"""

        summary = {}
        for key, value in self.metrics.items():
            if isinstance(value, dict) and "count" in value:
                count = value["count"]
                summary[key] = {
                    "count": count,
                    "avg": round(value["sum"] / count, 3) if count else 0,
                    "min": value["min"] if count else 0,
                    "max": value["max"]
                }
            else:
                summary[key] = value

        return summary


# Global metrics collector
metrics = MetricsCollector()
