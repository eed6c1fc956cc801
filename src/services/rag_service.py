"""Question answering over the indexed knowledge base.

Query flow::

    question ─validate─▶ embed (once) ─▶ retrieve (MMR or plain)
             ─▶ rerank (or trim to reranked_k) ─▶ synthesize ─▶ QueryResult

Only validation errors reach the caller.  An empty result set produces the
fixed no-information answer; any other failure produces the apology
answer with zeroed metrics, so a query never hard-fails.
"""

from __future__ import annotations

import math
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

import structlog

from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import (
    CostEstimate,
    QueryMetrics,
    QueryResult,
    RetrievalResult,
    SynthesizedAnswer,
    TokenUsage,
)
from src.services.answer_synthesizer import (
    APOLOGY_ANSWER,
    LLM_COST_PER_TOKEN,
    NO_INFORMATION_ANSWER,
    AnswerSynthesizer,
)
from src.services.embedding_batch import EmbeddingBatchManager
from src.services.reranker import RerankerService
from src.services.retriever import Retriever
from src.services.validation import InputValidator
from src.utils.errors import ValidationError

# text-embedding-3-small list price, USD per token.
_EMBEDDING_COST_PER_TOKEN = 0.02 / 1_000_000


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RAGService:
    """Composes the retrieval and generation stages into one query call."""

    def __init__(
        self,
        embedder: EmbeddingBatchManager,
        retriever: Retriever,
        reranker: RerankerService,
        synthesizer: AnswerSynthesizer,
        vector_index: IVectorIndexProvider,
        validator: InputValidator,
        top_k: int = 3,
        reranked_k: int = 1,
        configuration: dict[str, Any] | None = None,
    ) -> None:
        self._embedder = embedder
        self._retriever = retriever
        self._reranker = reranker
        self._synthesizer = synthesizer
        self._index = vector_index
        self._validator = validator
        self._top_k = top_k
        self._reranked_k = reranked_k
        self._configuration = configuration or {}
        self._logger: structlog.BoundLogger = structlog.get_logger(logger_name=__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(
        self,
        question: str,
        use_mmr: bool = True,
        use_reranking: bool = True,
        top_k: int | None = None,
        reranked_k: int | None = None,
    ) -> QueryResult:
        """Answer *question* with citations.

        Raises
        ------
        ValidationError
            If the question is empty or too long.  Nothing else is raised.
        """
        question = self._validator.validate_query(question)
        started = time.perf_counter()
        try:
            embedding_time, retrieval_time, reranking_time, candidates, final = await self._retrieve(
                question, use_mmr, use_reranking, top_k, reranked_k
            )

            if not final:
                self._logger.info("query_no_results", candidates=len(candidates))
                return QueryResult(
                    query=question,
                    answer=NO_INFORMATION_ANSWER,
                    metrics=QueryMetrics(
                        total_time=_elapsed_ms(started),
                        retrieval_time=retrieval_time,
                        reranking_time=reranking_time,
                        embedding_time=embedding_time,
                    ),
                )

            llm_started = time.perf_counter()
            answer = await self._synthesizer.synthesize(question, final)
            llm_time = _elapsed_ms(llm_started)
        except ValidationError:
            raise
        except Exception as exc:  # noqa: BLE001 -- queries degrade to an apology, never raise
            self._logger.error("query_failed", error=str(exc), error_type=type(exc).__name__)
            return QueryResult(query=question, answer=APOLOGY_ANSWER)

        metrics = QueryMetrics(
            total_time=_elapsed_ms(started),
            retrieval_time=retrieval_time,
            reranking_time=reranking_time,
            llm_time=llm_time,
            embedding_time=embedding_time,
            tokens_used=answer.tokens_used,
            cost_estimate=self._estimate_cost(
                question, answer.tokens_used, len(candidates) if use_reranking else 0
            ),
        )
        self._logger.info(
            "query_complete",
            results=len(final),
            total_ms=metrics.total_time,
            llm_ms=llm_time,
        )
        return self._result(question, answer, final, metrics)

    async def stream_query(
        self,
        question: str,
        use_mmr: bool = True,
        use_reranking: bool = True,
        top_k: int | None = None,
        reranked_k: int | None = None,
    ) -> AsyncIterator[str | QueryResult]:
        """Yield answer text as it is generated, then the final :class:`QueryResult`.

        Failures after the first delta end the stream with the apology
        answer as the final result.
        """
        question = self._validator.validate_query(question)
        started = time.perf_counter()
        try:
            embedding_time, retrieval_time, reranking_time, candidates, final = await self._retrieve(
                question, use_mmr, use_reranking, top_k, reranked_k
            )
            llm_started = time.perf_counter()
            answer: SynthesizedAnswer | None = None
            async for item in self._synthesizer.synthesize_stream(question, final):
                if isinstance(item, SynthesizedAnswer):
                    answer = item
                else:
                    yield item
        except ValidationError:
            raise
        except Exception as exc:  # noqa: BLE001 -- streamed queries degrade the same way
            self._logger.error("stream_query_failed", error=str(exc), error_type=type(exc).__name__)
            yield QueryResult(query=question, answer=APOLOGY_ANSWER)
            return

        if answer is None:
            yield QueryResult(query=question, answer=APOLOGY_ANSWER)
            return
        metrics = QueryMetrics(
            total_time=_elapsed_ms(started),
            retrieval_time=retrieval_time,
            reranking_time=reranking_time,
            llm_time=_elapsed_ms(llm_started) if final else 0.0,
            embedding_time=embedding_time,
            tokens_used=answer.tokens_used,
            cost_estimate=self._estimate_cost(
                question, answer.tokens_used, len(candidates) if use_reranking else 0
            ),
        )
        yield self._result(question, answer, final, metrics)

    async def system_status(self) -> dict[str, Any]:
        """Index statistics plus the static configuration in effect."""
        try:
            stats = await self._index.describe_stats()
        except Exception as exc:  # noqa: BLE001 -- status is informational
            self._logger.warning("status_index_unavailable", error=str(exc))
            return {
                "status": "error",
                "error": str(exc),
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            }
        return {
            "status": "operational",
            "index": stats.model_dump(),
            "services": {
                "vector_index": self._index.get_provider_name(),
                "llm": self._synthesizer.provider_name,
                "reranker_enabled": self._reranker.enabled,
            },
            "configuration": self._configuration,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _retrieve(
        self,
        question: str,
        use_mmr: bool,
        use_reranking: bool,
        top_k: int | None,
        reranked_k: int | None,
    ) -> tuple[float, float, float, list[RetrievalResult], list[RetrievalResult]]:
        k = top_k or self._top_k
        keep = reranked_k or self._reranked_k

        embedding_started = time.perf_counter()
        query_vector = await self._embedder.embed_one(question)
        embedding_time = _elapsed_ms(embedding_started)

        retrieval_started = time.perf_counter()
        if use_mmr:
            candidates = await self._retriever.retrieve_with_mmr(question, k, query_vector=query_vector)
        else:
            candidates = await self._retriever.retrieve(question, k, query_vector=query_vector)
        retrieval_time = _elapsed_ms(retrieval_started)

        reranking_time = 0.0
        final = candidates
        if use_reranking and candidates:
            rerank_started = time.perf_counter()
            final = await self._reranker.rerank(question, candidates, keep)
            reranking_time = _elapsed_ms(rerank_started)
        elif not use_reranking:
            final = candidates[:keep]

        self._logger.debug(
            "query_retrieval",
            candidates=len(candidates),
            final=len(final),
            mmr=use_mmr,
            reranking=use_reranking,
        )
        return embedding_time, retrieval_time, reranking_time, candidates, final

    def _estimate_cost(self, question: str, usage: TokenUsage, reranked_documents: int) -> CostEstimate:
        embedding = math.ceil(len(question) / 4) * _EMBEDDING_COST_PER_TOKEN
        llm = usage.total * LLM_COST_PER_TOKEN
        reranking = self._reranker.rerank_cost(reranked_documents) if self._reranker.enabled else 0.0
        return CostEstimate(
            embedding=embedding,
            llm=llm,
            reranking=reranking,
            total=embedding + llm + reranking,
        )

    @staticmethod
    def _result(
        question: str,
        answer: SynthesizedAnswer,
        final: list[RetrievalResult],
        metrics: QueryMetrics,
    ) -> QueryResult:
        return QueryResult(
            query=question,
            answer=answer.answer,
            citations=answer.citations,
            sources=answer.sources,
            retrieval_results=final,
            metrics=metrics,
        )
