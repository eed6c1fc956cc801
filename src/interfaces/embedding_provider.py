"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-dimension vectors.  The
embedding batch manager is the only core component that talks to a
provider directly; everything else goes through the manager so retries and
concurrency caps apply uniformly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider -- text-embedding-3-small or any OpenAI-compatible host
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    Providers are rate-limited remote services: callers must expect
    latency and occasional throttling and treat both as retry-worthy.
    """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for one text.

        Parameters
        ----------
        text:
            The text to embed.

        Returns
        -------
        list[float]
            A vector of length :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.RateLimitError
            If the provider throttled the request.
        src.utils.errors.EmbeddingError
            For any other API failure.
        """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for several texts in one request.

        Returns vectors positionally aligned with *texts*.  A failure fails
        the whole request; per-item isolation is the batch manager's job.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the vector dimension ``D``.

        Must stay constant for the provider's lifetime and match the
        dimension of the vector index.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""
