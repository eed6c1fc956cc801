"""Similarity retrieval with optional diversity (MMR) and keyword blending.

Every variant starts from the same primitive: embed the question once, run
one nearest-neighbour query against the vector index, and map the raw
matches to :class:`RetrievalResult` objects.

- :meth:`Retriever.retrieve_with_threshold` drops weak matches.
- :meth:`Retriever.hybrid_retrieve` blends the vector score with a
  whole-word keyword score and re-sorts.
- :meth:`Retriever.retrieve_with_mmr` over-fetches candidates and greedily
  picks the ones that are relevant *and* unlike what was already picked.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import RetrievalResult
from src.services.embedding_batch import EmbeddingBatchManager, cosine_similarity
from src.services.index_records import match_to_chunk

logger = structlog.get_logger(logger_name=__name__)

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "what", "how", "when", "where", "why", "who",
    }
)

_MAX_MMR_CANDIDATES = 100


def extract_keywords(query: str) -> list[str]:
    """Lower-cased query terms longer than two characters, stop words removed."""
    words = re.sub(r"[^\w\s]", " ", query.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS]


def keyword_score(content: str, keywords: list[str]) -> float:
    """Whole-word keyword hits in *content*, per 100 characters (min divisor 1)."""
    if not keywords:
        return 0.0
    text = content.lower()
    hits = sum(len(re.findall(rf"\b{re.escape(kw)}\b", text)) for kw in keywords)
    return hits / max(len(content) / 100, 1)


class Retriever:
    """Query-side access to the vector index.

    Parameters
    ----------
    embedder:
        Batch manager used for the query embedding (with retries) and for
        any candidate embeddings MMR needs.
    vector_index:
        The similarity index.
    top_k:
        Default number of results.
    mmr_lambda:
        Relevance weight in MMR; ``1.0`` is plain relevance order.
    similarity_threshold:
        Default floor for :meth:`retrieve_with_threshold`.
    hybrid_vector_weight:
        Weight of the vector score in :meth:`hybrid_retrieve`.
    """

    def __init__(
        self,
        embedder: EmbeddingBatchManager,
        vector_index: IVectorIndexProvider,
        top_k: int = 3,
        mmr_lambda: float = 0.7,
        similarity_threshold: float = 0.7,
        hybrid_vector_weight: float = 0.7,
    ) -> None:
        self._embedder = embedder
        self._index = vector_index
        self._top_k = top_k
        self._mmr_lambda = mmr_lambda
        self._threshold = similarity_threshold
        self._vector_weight = hybrid_vector_weight

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        filter: dict[str, Any] | None = None,
        query_vector: list[float] | None = None,
    ) -> list[RetrievalResult]:
        """Return up to *top_k* chunks nearest to *query*, best first.

        A *query_vector* computed by the caller skips the query embedding.
        """
        k = top_k or self._top_k
        vector = query_vector if query_vector is not None else await self._embedder.embed_one(query)
        matches = await self._index.query(vector, top_k=k, filter=filter, include_values=True)
        results = [RetrievalResult(chunk=match_to_chunk(m), score=m.score) for m in matches]
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug("retrieval_complete", requested=k, returned=len(results))
        return results

    async def retrieve_with_threshold(
        self,
        query: str,
        threshold: float | None = None,
        top_k: int | None = None,
    ) -> list[RetrievalResult]:
        floor = self._threshold if threshold is None else threshold
        return [r for r in await self.retrieve(query, top_k) if r.score >= floor]

    async def hybrid_retrieve(
        self,
        query: str,
        top_k: int | None = None,
        vector_weight: float | None = None,
    ) -> list[RetrievalResult]:
        """Blend vector similarity with keyword overlap.

        Fetches ``2 * top_k`` candidates, scores each as
        ``w * vector + (1 - w) * keyword`` and keeps the best *top_k*.
        """
        k = top_k or self._top_k
        weight = self._vector_weight if vector_weight is None else vector_weight
        keywords = extract_keywords(query)
        candidates = await self.retrieve(query, k * 2)

        blended = [
            r.model_copy(
                update={
                    "score": weight * r.score
                    + (1 - weight) * keyword_score(r.chunk.content, keywords)
                }
            )
            for r in candidates
        ]
        blended.sort(key=lambda r: r.score, reverse=True)
        return blended[:k]

    async def retrieve_with_mmr(
        self,
        query: str,
        top_k: int | None = None,
        mmr_lambda: float | None = None,
        recompute_embeddings: bool = False,
        query_vector: list[float] | None = None,
    ) -> list[RetrievalResult]:
        """Select *top_k* results by maximal marginal relevance.

        Parameters
        ----------
        query:
            The question.
        top_k:
            Results wanted; fewer are returned when fewer candidates exist.
        mmr_lambda:
            Trade-off between relevance (1.0) and diversity (0.0).
        recompute_embeddings:
            Embed every candidate's content again instead of reusing the
            vector stored in the index.  Candidates without a stored vector
            are always embedded.
        """
        k = top_k or self._top_k
        lam = self._mmr_lambda if mmr_lambda is None else mmr_lambda
        candidates = await self.retrieve(query, min(k * 3, _MAX_MMR_CANDIDATES), query_vector=query_vector)
        if not candidates:
            return []

        vectors = await self._candidate_vectors(candidates, recompute_embeddings)

        selected: list[int] = []
        remaining = list(range(len(candidates)))
        while remaining and len(selected) < k:
            best_index = remaining[0]
            best_score = float("-inf")
            for i in remaining:
                redundancy = max(
                    (self._similarity(vectors[i], vectors[j]) for j in selected),
                    default=0.0,
                )
                score = lam * candidates[i].score - (1 - lam) * redundancy
                if score > best_score:
                    best_index, best_score = i, score
            selected.append(best_index)
            remaining.remove(best_index)

        logger.debug("mmr_selection", candidates=len(candidates), selected=len(selected), lam=lam)
        return [candidates[i] for i in selected]

    async def _candidate_vectors(
        self,
        candidates: list[RetrievalResult],
        recompute: bool,
    ) -> list[list[float] | None]:
        vectors: list[list[float] | None] = [
            None if recompute else r.chunk.embedding for r in candidates
        ]
        missing = [i for i, v in enumerate(vectors) if v is None]
        if missing:
            outcome = await self._embedder.embed_many([candidates[i].chunk.content for i in missing])
            for position, vector in zip(outcome.succeeded_indices, outcome.vectors):
                vectors[missing[position]] = vector
        return vectors

    @staticmethod
    def _similarity(a: list[float] | None, b: list[float] | None) -> float:
        if a is None or b is None or len(a) != len(b):
            return 0.0
        return cosine_similarity(a, b)
