from typing import List, Optional, Protocol
import asyncio
import time

import structlog

from fusion_agent.domain.models.documents import DocumentChunk, RetrievedResult, ScoredChunk
from fusion_agent.infrastructure.observability.logging import metrics
from .context_ranker import ContextRanker
from .query_rewriter import QueryRewriter

logger = structlog.get_logger(__name__)


class SearchBackend(Protocol):
    """Vector index the retriever reads from and the ingestor writes to"""

    async def search(self, query: str, k: int) -> List[ScoredChunk]: ...

    async def upsert(self, chunks: List[DocumentChunk]) -> None: ...


class ContextRetriever:
    """Retrieves ranked document context from the search backend.

    Retrieval is best effort: any backend error or timeout yields an empty
    list so that a request never fails because of search.
    """

    def __init__(
        self,
        backend: SearchBackend,
        ranker: Optional[ContextRanker] = None,
        rewriter: Optional[QueryRewriter] = None,
        timeout_seconds: Optional[float] = 10.0
    ):
        self.backend = backend
        self.ranker = ranker or ContextRanker()
        self.rewriter = rewriter or QueryRewriter()
        self.timeout_seconds = timeout_seconds

    async def search(
        self,
        query: str,
        max_results: int = 3,
        similarity_threshold: float = 0.7,
        rewrite: bool = True
    ) -> List[RetrievedResult]:
        search_query = self.rewriter.rewrite(query) if rewrite else query
        started = time.perf_counter()

        try:
            hits = await asyncio.wait_for(
                self.backend.search(search_query, max_results),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Document search timed out", query=search_query[:80], timeout_seconds=self.timeout_seconds)
            return []
        except Exception as e:
            logger.warning("Document search failed, continuing without document context", query=search_query[:80], error=str(e))
            return []
        finally:
            metrics.record_latency("retrieval", (time.perf_counter() - started) * 1000)

        results = self.ranker.rank(hits or [], max_results, similarity_threshold)

        logger.info(
            "Retrieved document context",
            query=search_query[:80],
            hits=len(hits or []),
            results=len(results),
            threshold=similarity_threshold
        )
        return results
