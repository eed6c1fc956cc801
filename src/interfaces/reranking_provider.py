"""Abstract base class for reranking service providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import RerankScore


# Concrete implementations: CohereRerankProvider
# Located in: src/providers/reranker/
class IRerankingProvider(ABC):
    """Contract for second-pass relevance scoring services."""

    @abstractmethod
    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankScore]:
        """Score *documents* against *query*.

        Parameters
        ----------
        query:
            The user question.
        documents:
            Candidate texts, in the caller's order.
        top_n:
            Number of scored entries to return.

        Returns
        -------
        list[RerankScore]
            ``index`` refers to the position in *documents*.

        Raises
        ------
        src.utils.errors.RerankError
            If the call fails.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"cohere"``."""
