from typing import Dict, List, Any
import asyncio
import re

import structlog

from fusion_agent.domain.models.documents import DocumentChunk, ScoredChunk
from fusion_agent.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

_WORD = re.compile(r"\w+")


class InMemoryVectorIndex:
    """In-process document index with keyword-overlap scoring.

    Stands in for a hosted vector database. Scores are the fraction of query
    words found in the chunk, boosted when the whole query appears verbatim,
    capped at 1.0. Holds at most ``max_chunks`` chunks; the oldest go first.
    """

    def __init__(self, max_chunks: int = 1000):
        self.max_chunks = max_chunks
        self.chunks: Dict[str, DocumentChunk] = {}
        self._lock = asyncio.Lock()
        self._initialized = True

    async def upsert(self, chunks: List[DocumentChunk]) -> None:
        """Add or replace chunks by id"""

        async with self._lock:
            for chunk in chunks:
                self.chunks.pop(chunk.id, None)
                self.chunks[chunk.id] = chunk

            overflow = len(self.chunks) - self.max_chunks
            if overflow > 0:
                for chunk_id in list(self.chunks)[:overflow]:
                    del self.chunks[chunk_id]
                logger.warning("Index limit reached, dropped oldest chunks", dropped=overflow, max_chunks=self.max_chunks)

            metrics.set_gauge("index.chunks", len(self.chunks))

    async def search(self, query: str, k: int = 3) -> List[ScoredChunk]:
        """Top-k chunks sharing words with the query"""

        async with self._lock:
            candidates = list(self.chunks.values())

        hits = []
        for chunk in candidates:
            score = self.calculate_relevance(query, chunk.content)
            if score > 0:
                hits.append(ScoredChunk(chunk=chunk, score=score))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:k]

    @staticmethod
    def calculate_relevance(query: str, content: str) -> float:
        """Calculate relevance score between query and content"""

        query_lower = query.lower()
        content_lower = content.lower()

        query_words = set(_WORD.findall(query_lower))
        content_words = set(_WORD.findall(content_lower))

        if not query_words:
            return 0.0

        score = len(query_words & content_words) / len(query_words)

        # Boost score if query appears as substring
        if query_lower.strip() and query_lower.strip() in content_lower:
            score += 0.3

        return min(score, 1.0)

    async def clear(self) -> None:
        async with self._lock:
            self.chunks.clear()
        logger.info("Cleared document index")

    async def stats(self) -> Dict[str, Any]:
        async with self._lock:
            sources = {chunk.source for chunk in self.chunks.values()}
            return {
                "total_chunks": len(self.chunks),
                "sources": len(sources),
                "max_chunks": self.max_chunks
            }

    async def health_check(self) -> bool:
        return self._initialized
