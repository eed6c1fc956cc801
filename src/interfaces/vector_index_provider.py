"""Abstract base class for vector index providers.

The vector index stores one vector per chunk id together with a flat
metadata mapping (the chunk content is stored in the metadata under
``content``).  Its dimension must equal the embedding provider's; changing
embedding models means recreating the index, which is an administrative
operation outside the request path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import IndexMatch, IndexStats


# Concrete implementations: ChromaDBVectorIndex
# Located in: src/providers/vector_index/
class IVectorIndexProvider(ABC):
    """Contract for similarity-search indexes."""

    @abstractmethod
    async def upsert(self, records: list[dict[str, Any]]) -> int:
        """Insert or replace vectors.

        Parameters
        ----------
        records:
            Dicts with ``id``, ``values`` and ``metadata`` keys.  Metadata
            values must be primitives (str, int, float, bool).

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        src.utils.errors.IndexingError
            If the index rejects the write.
        """

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
        include_values: bool = False,
    ) -> list[IndexMatch]:
        """Return up to *top_k* nearest matches, best first.

        A similarity score near 1.0 means "very similar".  Fewer matches
        than *top_k* (including zero) is a normal result, not an error.
        """

    @abstractmethod
    async def delete_many(self, ids: list[str]) -> None:
        """Delete the vectors with the given ids (unknown ids are ignored)."""

    @abstractmethod
    async def describe_stats(self) -> IndexStats:
        """Return vector count, dimension and index name."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every vector from the index."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""
