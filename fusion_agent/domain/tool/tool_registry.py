from typing import Dict, List, Any, Optional
import asyncio

import structlog

from fusion_agent.domain.models.plugins import PluginOutcome
from .plugins.base_plugin import BasePlugin
from .tool_executor import PluginExecutor

logger = structlog.get_logger(__name__)


class PluginRegistry:
    """Registry of message plugins and the router that dispatches to them.

    Registration order is significant: dispatch reports outcomes in the order
    the matching plugins were registered, whatever order they finish in.
    Registering a second plugin under an existing name raises ValueError.
    """

    def __init__(self, executor: Optional[PluginExecutor] = None):
        self.plugins: Dict[str, BasePlugin] = {}
        self.executor = executor or PluginExecutor()

    def register(self, plugin: BasePlugin) -> None:
        """Register a new plugin"""

        if not plugin.name:
            raise ValueError("Plugin must have a name")
        if plugin.name in self.plugins:
            raise ValueError(f"Plugin '{plugin.name}' is already registered")

        self.plugins[plugin.name] = plugin
        logger.info("Registered plugin", plugin=plugin.name)

    def unregister(self, name: str) -> bool:
        return self.plugins.pop(name, None) is not None

    def get(self, name: str) -> Optional[BasePlugin]:
        return self.plugins.get(name)

    def list_plugins(self) -> List[Dict[str, Any]]:
        """Name and description of every plugin, in registration order"""
        return [plugin.get_info() for plugin in self.plugins.values()]

    def match(self, message: str) -> List[BasePlugin]:
        """Plugins whose predicate accepts the message, in registration order"""

        matched = []
        for plugin in self.plugins.values():
            try:
                if plugin.can_handle(message):
                    matched.append(plugin)
            except Exception as e:
                logger.warning("Plugin intent check failed", plugin=plugin.name, error=str(e))
        return matched

    async def dispatch(self, message: str) -> List[PluginOutcome]:
        """Run every matching plugin concurrently; one outcome per match"""

        matched = self.match(message)
        if not matched:
            return []

        logger.info("Dispatching plugins", plugins=[p.name for p in matched])

        # gather keeps argument order, which is registration order
        outcomes = await asyncio.gather(
            *(self.executor.execute(plugin, message) for plugin in matched)
        )
        return list(outcomes)
