from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from fusion_agent.domain.errors import PluginExecutionError
from fusion_agent.domain.models.plugins import PluginOutcome, PluginPayload


class BasePlugin(ABC):
    """Base class for message plugins.

    A plugin recognises a pattern in the user's message, extracts its input
    from it and produces a typed payload. ``execute`` turns the payload, or a
    PluginExecutionError raised by ``run``, into a PluginOutcome.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def can_handle(self, message: str) -> bool:
        """Whether the message contains something this plugin acts on"""
        pass

    @abstractmethod
    def extract_input(self, message: str) -> Optional[str]:
        """Pull this plugin's input out of the message"""
        pass

    @abstractmethod
    async def run(self, plugin_input: str) -> PluginPayload:
        """Produce the payload for the extracted input"""
        pass

    async def execute(self, message: str) -> PluginOutcome:
        plugin_input = self.extract_input(message)
        if plugin_input is None:
            return PluginOutcome.failed(self.name, "", "No input found in message")

        try:
            payload = await self.run(plugin_input)
        except PluginExecutionError as e:
            return PluginOutcome.failed(self.name, plugin_input, e.message)

        return PluginOutcome.ok(self.name, plugin_input, payload)

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description
        }
