from typing import Awaitable, Callable, List, Optional, Sequence
from pathlib import Path
import time

import structlog

from fusion_agent.domain.errors import IngestionFailure
from fusion_agent.domain.models.documents import (
    DocumentChunk, FileIngestionResult, IngestionFailureEntry, IngestionReport
)
from fusion_agent.infrastructure.observability.logging import agent_logger, metrics
from .markdown_cleaner import MarkdownLineCleaner
from .streaming_pipeline import stream_file_chunks

logger = structlog.get_logger(__name__)

ChunkSink = Callable[[List[DocumentChunk]], Awaitable[None]]


class DocumentIngestor:
    """Streams documents through the chunking pipeline into an index sink.

    Ingestion is best effort: a failing sink call loses that batch only, and
    an unreadable file is reported without stopping the remaining files.
    """

    def __init__(
        self,
        sink: ChunkSink,
        documents_path: str = "data/documents",
        extensions: Sequence[str] = (".md",),
        window_size: int = 30,
        batch_size: int = 3,
        clean_markdown: bool = False
    ):
        self.sink = sink
        self.documents_path = Path(documents_path)
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.window_size = window_size
        self.batch_size = batch_size
        self.clean_markdown = clean_markdown

    def discover_files(self, directory: Path) -> List[Path]:
        """Eligible documents in the directory, sorted by name"""

        return sorted(
            path for path in directory.iterdir()
            if path.is_file()
            and path.suffix.lower() in self.extensions
            and path.name != "README.md"
        )

    async def ingest_file(self, path: Path) -> FileIngestionResult:
        """Stream one file into the sink; read errors end this file only"""

        source = path.name
        result = FileIngestionResult(source=source)
        transform = MarkdownLineCleaner() if self.clean_markdown else None

        logger.info("Streaming chunks from file", source=source)

        try:
            with open(path, "r", encoding="utf-8") as handle:
                stream = stream_file_chunks(
                    handle, source, self.window_size, self.batch_size, transform
                )
                for batch in stream:
                    result.batches += 1
                    await self._send_batch(source, result.batches, batch, result)
        except (OSError, UnicodeDecodeError) as e:
            failure = IngestionFailure(source, e)
            logger.error("Failed to ingest file", source=source, error=str(e))
            result.error = failure.message

        logger.info(
            "Finished streaming file",
            source=source,
            chunks=result.chunks_indexed,
            batches=result.batches,
            failed_batches=result.failed_batches
        )
        return result

    async def ingest_directory(self, directory: Optional[str] = None) -> IngestionReport:
        """Ingest every eligible file and report counts plus per-file failures"""

        target = Path(directory) if directory else self.documents_path
        report = IngestionReport()
        started = time.perf_counter()

        try:
            files = self.discover_files(target)
        except OSError as e:
            logger.error("Failed to read documents directory", path=str(target), error=str(e))
            report.failures.append(IngestionFailureEntry(source=str(target), error=str(e)))
            return report

        if not files:
            logger.warning("No documents found", path=str(target), extensions=list(self.extensions))
            return report

        logger.info("Ingesting documents", path=str(target), files=len(files))

        for path in files:
            result = await self.ingest_file(path)
            report.chunks_indexed += result.chunks_indexed
            report.failed_batches += result.failed_batches
            if result.succeeded:
                report.files_processed += 1
            else:
                report.failures.append(IngestionFailureEntry(source=result.source, error=result.error))

        metrics.record_latency("ingestion", (time.perf_counter() - started) * 1000)
        metrics.increment_counter("ingestion.chunks_indexed", report.chunks_indexed)

        logger.info(
            "Ingestion finished",
            chunks_indexed=report.chunks_indexed,
            files_processed=report.files_processed,
            failures=len(report.failures)
        )
        return report

    async def _send_batch(
        self,
        source: str,
        batch_number: int,
        batch: List[DocumentChunk],
        result: FileIngestionResult
    ) -> None:
        try:
            await self.sink(batch)
        except Exception as e:
            result.failed_batches += 1
            agent_logger.log_ingestion_batch(source, batch_number, len(batch), success=False, error=str(e))
            return

        result.chunks_indexed += len(batch)
        agent_logger.log_ingestion_batch(source, batch_number, len(batch))
