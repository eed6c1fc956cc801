"""Reranking provider implementations."""

from src.providers.reranker.cohere_provider import CohereRerankProvider

__all__ = ["CohereRerankProvider"]
