from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from fusion_agent.domain.models.documents import DocumentChunk, ScoredChunk
from fusion_agent.infrastructure.config.settings import Settings
from fusion_agent.infrastructure.observability.langfuse_tracing import configure_tracing


@pytest.fixture(autouse=True, scope="session")
def disable_tracing():
    configure_tracing(Settings())


class FakeClock:
    """Manually advanced clock for time-dependent components"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSearchBackend:
    """Search backend returning canned hits and recording upserts"""

    def __init__(self, hits: List[ScoredChunk] = None, error: Exception = None):
        self.hits = hits or []
        self.error = error
        self.queries: List[str] = []
        self.upserted: List[List[DocumentChunk]] = []

    async def search(self, query: str, k: int) -> List[ScoredChunk]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.hits)

    async def upsert(self, chunks: List[DocumentChunk]) -> None:
        self.upserted.append(list(chunks))

    async def health_check(self) -> bool:
        return self.error is None


def make_chunk(content: str, source: str = "doc.md", index: int = 0) -> DocumentChunk:
    return DocumentChunk(
        content=content,
        source=source,
        chunk_index=index,
        metadata={"file_name": source, "chunk_index": index, "processed_at": "2024-01-01T00:00:00+00:00"}
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()
