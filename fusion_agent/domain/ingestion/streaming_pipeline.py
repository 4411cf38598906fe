"""
Streaming document chunking.

A ChunkStream turns a lazy token source into fixed-size chunk batches without
ever holding more than one batch of chunks. Contract for callers:

* the stream is finite and not restartable; once ``next_batch()`` has
  returned None it keeps returning None
* the caller drains the stream fully before releasing the underlying source
  (for file streams, the open file handle)
* chunks hold at most ``window_size`` whitespace-delimited tokens, taken
  contiguously and without overlap, numbered from 0 in source order
* the last batch may be smaller than ``batch_size``
"""

from typing import Callable, Iterable, Iterator, List, Optional, TextIO
from datetime import datetime, timezone
import re

from fusion_agent.domain.models.documents import DocumentChunk

_TOKEN_RE = re.compile(r"\S+")
_TRAILING_TOKEN = re.compile(r"\S*\Z")

READ_BLOCK_SIZE = 65536


def iter_text_tokens(text: str) -> Iterator[str]:
    """Yield whitespace-delimited tokens without building a token list"""
    for match in _TOKEN_RE.finditer(text):
        yield match.group(0)


def iter_file_segments(handle: TextIO, block_size: int = READ_BLOCK_SIZE) -> Iterator[str]:
    """Read an open file in fixed-size blocks and yield text segments.

    A segment ends at the last line break of what has been read or, for a
    line longer than a block, before the trailing partial token, which is
    carried into the next block. Tokens are never split, and apart from a
    single token longer than a block nothing bigger than two blocks is held.
    """

    pending = ""
    while True:
        block = handle.read(block_size)
        if not block:
            break

        pending += block
        cut = pending.rfind("\n") + 1
        if not cut:
            cut = _TRAILING_TOKEN.search(pending).start()
        if cut:
            yield pending[:cut]
            pending = pending[cut:]

    if pending:
        yield pending


def iter_line_tokens(lines: Iterable[str], transform: Optional[Callable[[str], str]] = None) -> Iterator[str]:
    """Yield tokens line by line, optionally rewriting each line first"""
    for line in lines:
        if transform is not None:
            line = transform(line)
        yield from iter_text_tokens(line)


def _segment_lines(handle: TextIO, block_size: int) -> Iterator[str]:
    for segment in iter_file_segments(handle, block_size):
        yield from segment.splitlines()


class ChunkStream:
    """Pull-based iterator of chunk batches over a token source"""

    def __init__(
        self,
        tokens: Iterable[str],
        source: str,
        window_size: int = 30,
        batch_size: int = 3,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.source = source
        self.window_size = window_size
        self.batch_size = batch_size
        self._tokens = iter(tokens)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._next_index = 0
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def chunks_emitted(self) -> int:
        return self._next_index

    def next_batch(self) -> Optional[List[DocumentChunk]]:
        """Return the next batch, or None once the source is used up"""

        if self._exhausted:
            return None

        batch: List[DocumentChunk] = []
        while len(batch) < self.batch_size:
            chunk = self._next_chunk()
            if chunk is None:
                self._exhausted = True
                break
            batch.append(chunk)

        return batch or None

    def __iter__(self) -> Iterator[List[DocumentChunk]]:
        return self

    def __next__(self) -> List[DocumentChunk]:
        batch = self.next_batch()
        if batch is None:
            raise StopIteration
        return batch

    def _next_chunk(self) -> Optional[DocumentChunk]:
        window: List[str] = []
        for token in self._tokens:
            window.append(token)
            if len(window) == self.window_size:
                break

        content = " ".join(window).strip()
        if not content:
            return None

        chunk_index = self._next_index
        self._next_index += 1

        return DocumentChunk(
            content=content,
            source=self.source,
            chunk_index=chunk_index,
            metadata={
                "file_name": self.source,
                "chunk_index": chunk_index,
                "processed_at": self._clock().isoformat(),
            }
        )


def stream_text_chunks(text: str, source: str, window_size: int = 30, batch_size: int = 3) -> ChunkStream:
    """Chunk stream over an in-memory document"""
    return ChunkStream(iter_text_tokens(text), source, window_size, batch_size)


def stream_file_chunks(
    handle: TextIO,
    source: str,
    window_size: int = 30,
    batch_size: int = 3,
    transform: Optional[Callable[[str], str]] = None,
    block_size: int = READ_BLOCK_SIZE
) -> ChunkStream:
    """Chunk stream over an open text file, read one block at a time"""
    tokens = iter_line_tokens(_segment_lines(handle, block_size), transform)
    return ChunkStream(tokens, source, window_size, batch_size)
