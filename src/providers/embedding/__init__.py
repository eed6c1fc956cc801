"""Embedding provider implementations.

``OpenAIEmbeddingProvider`` talks to the OpenAI embeddings endpoint or any
OpenAI-compatible host (set ``OPENAI_EMBEDDING_BASE_URL``).  The vector
length must match the index dimension configured in ``Settings``.
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
