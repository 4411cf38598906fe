import asyncio
import time

from fusion_agent.domain.models.plugins import PluginOutcome
from fusion_agent.infrastructure.observability.langfuse_tracing import observe
from fusion_agent.infrastructure.observability.logging import agent_logger, metrics
from .plugins.base_plugin import BasePlugin


# Execution with isolation & monitoring
class PluginExecutor:
    """Runs one plugin so that nothing it does can escape as an exception"""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    @observe(name="plugin_execution", capture_input=False)
    async def execute(self, plugin: BasePlugin, message: str) -> PluginOutcome:
        started = time.perf_counter()
        plugin_input = ""

        try:
            plugin_input = plugin.extract_input(message) or ""
            outcome = await asyncio.wait_for(plugin.execute(message), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            outcome = PluginOutcome.failed(plugin.name, plugin_input, "Plugin execution timeout")
        except Exception as e:
            outcome = PluginOutcome.failed(plugin.name, plugin_input, str(e) or type(e).__name__)

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency(f"plugin.{plugin.name}", duration_ms)
        agent_logger.log_plugin_execution(
            plugin_name=plugin.name,
            plugin_input=outcome.input,
            duration_ms=duration_ms,
            success=outcome.success,
            error=outcome.error
        )

        return outcome
