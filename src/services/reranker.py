"""Second-pass relevance scoring that never fails the query.

The reranking provider is an optional, paid, remote dependency.  When it is
missing or errors out, :class:`RerankerService` logs the problem and hands
back the first ``top_n`` results in their original order.
"""

from __future__ import annotations

import math

import structlog

from src.interfaces.reranking_provider import IRerankingProvider
from src.models.rag import RetrievalResult

logger = structlog.get_logger(logger_name=__name__)

# USD per search unit (one query against up to 100 documents).
_COST_PER_SEARCH_UNIT = 0.001
_DOCUMENTS_PER_SEARCH_UNIT = 100


class RerankerService:
    """Wraps an :class:`IRerankingProvider` with a document cap and a fallback."""

    def __init__(self, provider: IRerankingProvider | None, max_documents: int = 50) -> None:
        self._provider = provider
        self._max_documents = max_documents

    @property
    def enabled(self) -> bool:
        return self._provider is not None

    async def rerank(self, query: str, results: list[RetrievalResult], top_n: int) -> list[RetrievalResult]:
        """Re-order *results* by the provider's relevance scores.

        At most ``max_documents`` results are sent.  Each returned result
        carries the provider score in both ``reranked_score`` and
        ``score``.  Any failure returns ``results[:top_n]`` unchanged.
        """
        if not results:
            return []
        if self._provider is None:
            return results[:top_n]

        candidates = results[: self._max_documents]
        try:
            scores = await self._provider.rerank(
                query,
                [r.chunk.content for r in candidates],
                min(top_n, len(candidates)),
            )
            reranked = [
                candidates[s.index].model_copy(
                    update={"reranked_score": s.relevance_score, "score": s.relevance_score}
                )
                for s in scores
                if 0 <= s.index < len(candidates)
            ]
        except Exception as exc:  # noqa: BLE001 -- reranking is fail-soft by contract
            logger.error(
                "rerank_failed",
                provider=self._provider.get_provider_name(),
                error=str(exc),
                fallback_results=min(top_n, len(results)),
            )
            return results[:top_n]

        reranked.sort(key=lambda r: r.score, reverse=True)
        logger.debug("rerank_complete", candidates=len(candidates), returned=len(reranked))
        return reranked[:top_n]

    @staticmethod
    def rerank_cost(document_count: int) -> float:
        """Approximate USD cost of reranking *document_count* documents."""
        if document_count <= 0:
            return 0.0
        return math.ceil(document_count / _DOCUMENTS_PER_SEARCH_UNIT) * _COST_PER_SEARCH_UNIT
