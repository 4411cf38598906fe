from fastapi import APIRouter, Depends

from fusion_agent.application.api.dependencies import get_runtime
from fusion_agent.application.api.schema.requests import OperationResponse, SearchRequest, SearchResponse
from fusion_agent.application.runtime import AgentRuntime
from fusion_agent.domain.models.agent_state import UsedChunk
from fusion_agent.domain.models.documents import IngestionReport

router = APIRouter(prefix="/rag", tags=["rag"])


@router.post("/process", response_model=IngestionReport)
async def process_documents(runtime: AgentRuntime = Depends(get_runtime)) -> IngestionReport:
    """Chunk and index every document in the configured directory"""
    return await runtime.ingestor.ingest_directory()


@router.post("/search", response_model=SearchResponse)
async def search_documents(payload: SearchRequest, runtime: AgentRuntime = Depends(get_runtime)) -> SearchResponse:
    settings = runtime.settings
    results = await runtime.retriever.search(
        payload.query,
        max_results=payload.max_results or settings.max_search_results,
        similarity_threshold=(
            payload.similarity_threshold
            if payload.similarity_threshold is not None
            else settings.search_similarity_threshold
        ),
        rewrite=False
    )

    return SearchResponse(
        query=payload.query,
        results=[UsedChunk.from_result(r) for r in results],
        count=len(results)
    )


@router.get("/stats", response_model=OperationResponse)
async def index_stats(runtime: AgentRuntime = Depends(get_runtime)) -> OperationResponse:
    stats = await runtime.index.stats() if hasattr(runtime.index, "stats") else {}
    return OperationResponse(message="Index statistics", data=stats)


@router.delete("/clear", response_model=OperationResponse)
async def clear_index(runtime: AgentRuntime = Depends(get_runtime)) -> OperationResponse:
    await runtime.index.clear()
    return OperationResponse(message="Index cleared successfully")
