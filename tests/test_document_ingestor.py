"""
Tests for directory ingestion into a chunk sink
"""

from typing import List

import pytest

from fusion_agent.domain.ingestion.document_ingestor import DocumentIngestor
from fusion_agent.domain.models.documents import DocumentChunk


class RecordingSink:
    """Collects batches; fails on the listed call numbers (1-based)"""

    def __init__(self, fail_on: List[int] = None):
        self.fail_on = set(fail_on or [])
        self.calls = 0
        self.batches: List[List[DocumentChunk]] = []

    async def __call__(self, batch: List[DocumentChunk]) -> None:
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError("index unavailable")
        self.batches.append(batch)


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))


@pytest.fixture
def docs(tmp_path):
    (tmp_path / "a.md").write_text(_words(20, "a"), encoding="utf-8")
    (tmp_path / "b.md").write_text(_words(7, "b"), encoding="utf-8")
    (tmp_path / "README.md").write_text(_words(50, "r"), encoding="utf-8")
    (tmp_path / "notes.txt").write_text(_words(50, "t"), encoding="utf-8")
    return tmp_path


class TestIngestDirectory:
    async def test_streams_eligible_files_in_batches(self, docs):
        sink = RecordingSink()
        ingestor = DocumentIngestor(sink, documents_path=str(docs), window_size=5, batch_size=2)

        report = await ingestor.ingest_directory()

        # a.md: 4 chunks in 2 batches, b.md: 2 chunks in 1 batch
        assert report.chunks_indexed == 6
        assert report.files_processed == 2
        assert report.failed_batches == 0
        assert report.failures == []
        assert [len(b) for b in sink.batches] == [2, 2, 2]
        assert {c.source for b in sink.batches for c in b} == {"a.md", "b.md"}

    async def test_failed_batch_is_skipped_and_ingestion_continues(self, docs):
        sink = RecordingSink(fail_on=[1])
        ingestor = DocumentIngestor(sink, documents_path=str(docs), window_size=5, batch_size=2)

        report = await ingestor.ingest_directory()

        assert report.chunks_indexed == 4
        assert report.failed_batches == 1
        assert report.files_processed == 2
        assert [c.chunk_index for c in sink.batches[0]] == [2, 3]

    async def test_undecodable_file_is_reported(self, docs):
        (docs / "broken.md").write_bytes(b"\xff\xfe\xfa not utf8 \xc3\x28")
        sink = RecordingSink()
        ingestor = DocumentIngestor(sink, documents_path=str(docs), window_size=5, batch_size=2)

        report = await ingestor.ingest_directory()

        assert report.files_processed == 2
        assert len(report.failures) == 1
        assert report.failures[0].source == "broken.md"
        assert "broken.md" in report.failures[0].error
        assert report.chunks_indexed == 6

    async def test_missing_directory_is_a_failure_entry(self, tmp_path):
        ingestor = DocumentIngestor(RecordingSink(), documents_path=str(tmp_path / "nope"))

        report = await ingestor.ingest_directory()

        assert report.chunks_indexed == 0
        assert report.files_processed == 0
        assert len(report.failures) == 1

    async def test_empty_directory(self, tmp_path):
        sink = RecordingSink()
        report = await DocumentIngestor(sink, documents_path=str(tmp_path)).ingest_directory()

        assert report.chunks_indexed == 0
        assert report.failures == []
        assert sink.calls == 0

    async def test_explicit_directory_overrides_default(self, docs, tmp_path_factory):
        sink = RecordingSink()
        ingestor = DocumentIngestor(sink, documents_path=str(tmp_path_factory.mktemp("empty")))

        report = await ingestor.ingest_directory(str(docs))

        assert report.files_processed == 2


class TestDiscovery:
    def test_filters_by_extension_and_skips_readme(self, docs):
        ingestor = DocumentIngestor(RecordingSink(), extensions=[".md", ".TXT"])

        names = [p.name for p in ingestor.discover_files(docs)]

        assert names == ["a.md", "b.md", "notes.txt"]


class TestMarkdownCleaning:
    async def test_clean_markdown_strips_syntax(self, tmp_path):
        (tmp_path / "guide.md").write_text("## Setup\n**Install** the `cli` first\n", encoding="utf-8")
        sink = RecordingSink()
        ingestor = DocumentIngestor(sink, documents_path=str(tmp_path), window_size=50, clean_markdown=True)

        await ingestor.ingest_directory()

        assert sink.batches[0][0].content == "Setup Install the cli first"

    async def test_raw_markdown_kept_by_default(self, tmp_path):
        (tmp_path / "guide.md").write_text("## Setup\n", encoding="utf-8")
        sink = RecordingSink()

        await DocumentIngestor(sink, documents_path=str(tmp_path)).ingest_directory()

        assert sink.batches[0][0].content == "## Setup"
