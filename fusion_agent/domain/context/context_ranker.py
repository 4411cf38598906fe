from typing import List

from fusion_agent.domain.models.documents import RetrievedResult, ScoredChunk


class ContextRanker:
    """Ranks search hits by relevance to the query"""

    def rank(
        self,
        hits: List[ScoredChunk],
        max_results: int,
        similarity_threshold: float
    ) -> List[RetrievedResult]:
        """Sort by descending score, drop hits under the threshold, keep the top max_results"""

        if max_results < 1:
            return []

        # Backends occasionally report scores slightly outside [0, 1]
        scored = [(min(max(hit.score, 0.0), 1.0), hit) for hit in hits]
        scored.sort(key=lambda pair: pair[0], reverse=True)

        kept = [
            (score, hit) for score, hit in scored
            if score >= similarity_threshold
        ][:max_results]

        return [
            RetrievedResult(chunk=hit.chunk, score=score, rank=rank)
            for rank, (score, hit) in enumerate(kept, start=1)
        ]
