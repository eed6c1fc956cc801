"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndexProvider`.
The collection uses cosine distance; scores are reported as
``1 - distance`` clamped to ``[0, 1]`` so that 1.0 means identical.

Chunk text is stored as the Chroma *document* and re-attached to the match
metadata under ``content`` on the way out, so callers see the same flat
record they upserted.

The ChromaDB client is synchronous; every collection call runs in a worker
thread through ``asyncio.to_thread`` so the event loop keeps serving jobs
and queries while the index reads or writes.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Must be set before chromadb is imported to keep telemetry off.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.rag import IndexMatch, IndexStats
from src.utils.errors import IndexingError

logger = structlog.get_logger(logger_name=__name__)


class _PrecomputedEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that refuses to run.

    Every vector is computed by the embedding batch manager before it
    reaches the index; this stops ChromaDB from loading its default model.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("citebase passes pre-computed embeddings to ChromaDB.")

    def name(self) -> str:
        return "citebase_precomputed"


class ChromaDBVectorIndex(IVectorIndexProvider):
    """Vector index backed by a persistent ChromaDB collection.

    Parameters
    ----------
    persist_directory:
        Directory holding the ChromaDB files.
    collection_name:
        Collection (index) name.
    dimension:
        Expected vector dimension; upserts with a different length are
        rejected with :class:`IndexingError`.
    upsert_batch_size:
        Records written per ``collection.upsert`` call.
    client:
        Pre-built ChromaDB client (tests pass an ``EphemeralClient`` or a mock).
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "citebase_documents",
        dimension: int | None = None,
        upsert_batch_size: int = 150,
        client: Any | None = None,
    ) -> None:
        self._collection_name = collection_name
        self._dimension = dimension
        self._batch_size = upsert_batch_size
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection = self._open_collection()

    def _open_collection(self) -> Any:
        try:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_PrecomputedEmbeddingFunction(),
            )
        except ValueError:
            # Collections created with another embedding function refuse a
            # different one; vectors are supplied explicitly either way.
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IVectorIndexProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, records: list[dict[str, Any]]) -> int:
        """Write *records* in batches of ``upsert_batch_size``."""
        if not records:
            return 0

        if self._dimension is not None:
            for record in records:
                if len(record["values"]) != self._dimension:
                    raise IndexingError(
                        message=(
                            f"Vector {record['id']} has dimension {len(record['values'])}, "
                            f"index expects {self._dimension}"
                        ),
                        provider_name=self.get_provider_name(),
                    )

        written = 0
        try:
            for start in range(0, len(records), self._batch_size):
                batch = records[start : start + self._batch_size]
                metadatas = [self._to_chroma_metadata(r.get("metadata", {})) for r in batch]
                await asyncio.to_thread(
                    self._collection.upsert,
                    ids=[r["id"] for r in batch],
                    embeddings=[list(r["values"]) for r in batch],
                    documents=[str(r.get("metadata", {}).get("content", "")) for r in batch],
                    metadatas=metadatas,
                )
                written += len(batch)
                logger.debug(
                    "chromadb_upsert_batch",
                    batch=start // self._batch_size + 1,
                    written=written,
                    total=len(records),
                )
        except Exception as exc:
            raise IndexingError(
                message=f"ChromaDB upsert failed after {written} records: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_upsert", count=written)
        return written

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
        include_values: bool = False,
    ) -> list[IndexMatch]:
        """Nearest-neighbour search; returns at most *top_k* matches."""
        if top_k <= 0:
            return []
        try:
            include = ["documents", "metadatas", "distances"]
            if include_values:
                include.append("embeddings")
            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": top_k,
                "include": include,
            }
            where = self._translate_filter(filter) if filter else None
            if where:
                kwargs["where"] = where
            results = await asyncio.to_thread(self._collection.query, **kwargs)
        except Exception as exc:
            raise IndexingError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = (results.get("ids") or [[]])[0]
        if not ids:
            return []
        documents = self._first_row(results, "documents", len(ids), "")
        metadatas = self._first_row(results, "metadatas", len(ids), None)
        distances = self._first_row(results, "distances", len(ids), 1.0)
        embeddings = self._first_row(results, "embeddings", len(ids), None)

        matches: list[IndexMatch] = []
        for i, vector_id in enumerate(ids):
            metadata = dict(metadatas[i] or {})
            metadata["content"] = documents[i] or ""
            values = embeddings[i]
            matches.append(
                IndexMatch(
                    id=vector_id,
                    score=max(0.0, min(1.0, 1.0 - float(distances[i]))),
                    values=[float(v) for v in values] if values is not None else None,
                    metadata=metadata,
                )
            )

        logger.debug("chromadb_query", requested=top_k, returned=len(matches))
        return matches

    async def delete_many(self, ids: list[str]) -> None:
        if not ids:
            return
        try:
            await asyncio.to_thread(self._collection.delete, ids=ids)
        except Exception as exc:
            raise IndexingError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_delete", count=len(ids))

    async def describe_stats(self) -> IndexStats:
        try:
            count, dimension = await asyncio.to_thread(self._stats_sync)
        except Exception as exc:
            raise IndexingError(
                message=f"ChromaDB stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return IndexStats(total_vectors=count, dimension=dimension, index_name=self._collection_name)

    async def clear(self) -> None:
        """Drop and recreate the collection."""
        try:
            await asyncio.to_thread(self._client.delete_collection, name=self._collection_name)
        except Exception as exc:
            raise IndexingError(
                message=f"ChromaDB clear failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        self._collection = await asyncio.to_thread(self._open_collection)
        logger.info("chromadb_cleared", collection=self._collection_name)

    def get_provider_name(self) -> str:
        return "chromadb"

    # -- Sync helpers (executed via asyncio.to_thread) --------------------

    def _stats_sync(self) -> tuple[int, int | None]:
        count = self._collection.count()
        dimension = self._dimension
        if dimension is None and count > 0:
            sample = self._collection.peek(limit=1)
            stored = sample.get("embeddings") if sample else None
            if stored is not None and len(stored) > 0:
                dimension = len(stored[0])
        return count, dimension

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _to_chroma_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
        """Drop ``content`` and ``None`` values; stringify anything non-primitive."""
        flat: dict[str, str | int | float | bool] = {}
        for key, value in metadata.items():
            if key == "content" or value is None:
                continue
            if isinstance(value, (str, int, float, bool)):
                flat[key] = value
            else:
                flat[key] = str(value)
        return flat

    @staticmethod
    def _first_row(results: dict[str, Any], key: str, length: int, default: Any) -> list[Any]:
        rows = results.get(key)
        if rows is None or len(rows) == 0 or rows[0] is None:
            return [default] * length
        return list(rows[0])

    @staticmethod
    def _translate_filter(filter: dict[str, Any]) -> dict[str, Any] | None:
        """Turn ``{"field": value | {"$op": value}}`` into a ChromaDB ``where`` clause.

        Multiple fields are combined with ``$and``; a filter that already
        uses ``$and`` / ``$or`` is passed through unchanged.
        """
        if not filter:
            return None
        if any(key in ("$and", "$or") for key in filter):
            return filter
        clauses = [
            {key: value if isinstance(value, dict) else {"$eq": value}}
            for key, value in filter.items()
        ]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
