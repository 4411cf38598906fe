from typing import Dict, List, Union
from pydantic import BaseModel, ConfigDict, Field
import uuid

MetadataValue = Union[str, int, float, bool]


class DocumentChunk(BaseModel):
    """Contiguous slice of a source document's tokens"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique chunk identifier")
    content: str
    source: str = Field(description="Source identifier, usually the file name")
    chunk_index: int = Field(ge=0, description="Zero-based position within the source")
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)


class RetrievedResult(BaseModel):
    """A chunk returned by retrieval together with its similarity score"""
    chunk: DocumentChunk
    score: float = Field(ge=0.0, le=1.0)
    rank: int = Field(ge=1)

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def source(self) -> str:
        return self.chunk.source


class ScoredChunk(BaseModel):
    """Raw hit from the search backend before thresholding and ranking"""
    chunk: DocumentChunk
    score: float


class FileIngestionResult(BaseModel):
    source: str
    chunks_indexed: int = 0
    batches: int = 0
    failed_batches: int = 0
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return not self.error


class IngestionFailureEntry(BaseModel):
    source: str
    error: str


class IngestionReport(BaseModel):
    """Outcome of one ingestion run over a document directory"""
    chunks_indexed: int = 0
    files_processed: int = 0
    failed_batches: int = 0
    failures: List[IngestionFailureEntry] = Field(default_factory=list)
