from typing import Optional
from datetime import datetime, timezone
import time

import structlog

from fusion_agent import __version__
from fusion_agent.domain.context.context_retriever import ContextRetriever, SearchBackend
from fusion_agent.domain.context.memory.session_memory_store import SessionMemoryStore
from fusion_agent.domain.context.prompt_assembler import PromptAssembler
from fusion_agent.domain.ingestion.document_ingestor import DocumentIngestor
from fusion_agent.domain.models.agent_state import DependencyStatus, HealthReport
from fusion_agent.domain.orchestration.core.main_agent import AgentOrchestrator, LanguageModel
from fusion_agent.domain.tool.plugins.math_plugin import MathPlugin
from fusion_agent.domain.tool.plugins.weather_plugin import WeatherPlugin
from fusion_agent.domain.tool.tool_executor import PluginExecutor
from fusion_agent.domain.tool.tool_registry import PluginRegistry
from fusion_agent.infrastructure.config.settings import Settings
from fusion_agent.infrastructure.llm.gemini_client import GeminiClient
from fusion_agent.infrastructure.observability.logging import metrics
from fusion_agent.infrastructure.vector.memory_vector_index import InMemoryVectorIndex

logger = structlog.get_logger(__name__)


class AgentRuntime:
    """Composition root owning every long-lived component of the server"""

    def __init__(
        self,
        settings: Settings,
        index: Optional[SearchBackend] = None,
        llm: Optional[LanguageModel] = None,
        plugins: Optional[PluginRegistry] = None
    ):
        self.settings = settings
        self.started_at = time.monotonic()

        self.memory = SessionMemoryStore(
            max_messages=settings.max_memory_messages,
            eviction_age_minutes=settings.memory_eviction_age_minutes,
            cleanup_interval_seconds=settings.memory_cleanup_interval_seconds
        )
        self.index = index if index is not None else InMemoryVectorIndex(max_chunks=settings.index_max_chunks)
        self.llm = llm if llm is not None else GeminiClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds
        )
        self.plugins = plugins if plugins is not None else self._default_plugins(settings)
        self.retriever = ContextRetriever(self.index, timeout_seconds=settings.search_timeout_seconds)
        self.orchestrator = AgentOrchestrator(
            memory=self.memory,
            plugins=self.plugins,
            retriever=self.retriever,
            assembler=PromptAssembler(),
            llm=self.llm,
            summary_message_count=settings.memory_summary_messages,
            max_search_results=settings.max_search_results,
            similarity_threshold=settings.agent_similarity_threshold,
            llm_timeout_seconds=settings.llm_timeout_seconds,
            max_message_length=settings.max_message_length
        )
        self.ingestor = DocumentIngestor(
            sink=self.index.upsert,
            documents_path=settings.documents_path,
            extensions=settings.document_extensions,
            window_size=settings.chunk_window_size,
            batch_size=settings.chunk_batch_size,
            clean_markdown=settings.ingest_clean_markdown
        )

    @staticmethod
    def _default_plugins(settings: Settings) -> PluginRegistry:
        registry = PluginRegistry(PluginExecutor(timeout_seconds=settings.plugin_timeout_seconds))
        registry.register(WeatherPlugin(
            api_key=settings.openweather_api_key,
            timeout_seconds=settings.plugin_timeout_seconds
        ))
        registry.register(MathPlugin())
        return registry

    async def start(self) -> None:
        self.memory.start()
        logger.info("Agent runtime started", plugins=[p["name"] for p in self.plugins.list_plugins()])

    async def stop(self) -> None:
        await self.memory.stop()
        logger.info("Agent runtime stopped")

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    async def health(self) -> HealthReport:
        services = await self.orchestrator.health()
        overall = DependencyStatus.OK if services["memory"] is DependencyStatus.OK else DependencyStatus.ERROR
        return HealthReport(
            status=overall,
            timestamp=datetime.now(timezone.utc),
            uptime_seconds=round(self.uptime_seconds, 3),
            version=self.settings.version or __version__,
            services=services,
            metrics=metrics.get_metrics_summary()
        )
