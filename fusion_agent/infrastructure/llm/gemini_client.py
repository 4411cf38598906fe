"""
Gemini text generation through the google-generativeai SDK
"""

from typing import Dict, List, Any, Optional, Tuple
import hashlib

import google.generativeai as genai
import structlog
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage

logger = structlog.get_logger(__name__)


class LLMUnavailableError(RuntimeError):
    pass


class GeminiClient:
    """Language model client exposing ``complete(messages) -> text``"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.0-flash-lite",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: float = 30.0,
        client: Any = None
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._client = None
        # One GenerativeModel per distinct system instruction
        self._models: Dict[str, Any] = {}

        if not api_key:
            logger.warning("No Gemini API key provided, generation will use the fallback reply")
            return

        self._client = client if client is not None else genai
        self._client.configure(api_key=api_key)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    @staticmethod
    def build_request(messages: List[BaseMessage]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Split chat messages into a system instruction and Gemini contents"""

        system_parts = []
        contents = []
        for message in messages:
            text = message.content if isinstance(message.content, str) else str(message.content)
            if isinstance(message, SystemMessage):
                system_parts.append(text)
            else:
                role = "model" if isinstance(message, AIMessage) else "user"
                contents.append({"role": role, "parts": [text]})

        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents

    def _get_model(self, system_instruction: Optional[str]) -> Any:
        cache_key = hashlib.md5((system_instruction or "").encode()).hexdigest()
        if cache_key not in self._models:
            kwargs: Dict[str, Any] = {"model_name": self.model}
            if system_instruction:
                kwargs["system_instruction"] = system_instruction
            self._models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._models[cache_key]

    async def complete(self, messages: List[BaseMessage]) -> str:
        if not self.is_available:
            raise LLMUnavailableError("Gemini API key not configured")

        system_instruction, contents = self.build_request(messages)
        response = await self._get_model(system_instruction).generate_content_async(
            contents,
            generation_config={
                "temperature": self.temperature,
                "max_output_tokens": self.max_tokens
            },
            request_options={"timeout": self.timeout_seconds}
        )

        try:
            text = response.text.strip()
        except ValueError as e:
            # Raised by the SDK when the prompt was blocked or no candidate has text
            raise LLMUnavailableError(f"Unexpected Gemini response: {e}") from e
        if not text:
            raise LLMUnavailableError("Gemini returned an empty completion")

        usage = getattr(response, "usage_metadata", None)
        logger.info(
            "Generated completion",
            model=self.model,
            prompt_tokens=getattr(usage, "prompt_token_count", None),
            completion_tokens=getattr(usage, "candidates_token_count", None)
        )
        return text
