"""Content-hash deduplication for uploaded documents and their chunks.

Documents are identified by the SHA-256 of their trimmed text.  A document
is registered only after its chunks have been embedded and indexed, so a
job that fails mid-way never marks its files as already ingested.

Registry entries expire after ``retention_hours`` (7 days by default) and
are evicted lazily when looked up or by :meth:`DocumentCache.cleanup_expired`.
They live in the injected key-value store as plain JSON-ready dicts, so a
file-backed store keeps them across processes.

Chunk hashes are best-effort: they sit in a separate bounded LRU owned by
the cache, which is emptied whenever any document entry expires.  Filling
it never pushes document entries out of the registry.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import structlog
from cachetools import LRUCache

from src.interfaces.store_provider import IKeyValueStore
from src.models.documents import DocumentChunk, UploadedFile, content_hash
from src.models.rag import BatchFilterResult, CacheStats, ChunkFilterResult, DocumentCacheEntry

logger = structlog.get_logger(logger_name=__name__)


class DocumentCache:
    """Registry of ingested document hashes plus a set of chunk hashes.

    Parameters
    ----------
    store:
        Key-value store for the document entries, keyed by content hash.
    retention_hours:
        Age after which a document entry counts as absent.
    chunk_hash_limit:
        Maximum number of chunk hashes remembered; the least recently
        used are dropped first.
    clock:
        Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        store: IKeyValueStore,
        retention_hours: float = 168,
        chunk_hash_limit: int = 50_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._chunk_hashes: LRUCache[str, bool] = LRUCache(maxsize=chunk_hash_limit)
        self._retention_seconds = retention_hours * 3600
        self._clock = clock

    @staticmethod
    def hash_content(content: str) -> str:
        return content_hash(content)

    @staticmethod
    def fingerprint(content: str) -> str:
        """Short 16-character form of the content hash, for display."""
        return content_hash(content)[:16]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def is_duplicate(self, content: str) -> tuple[bool, DocumentCacheEntry | None]:
        """Return whether *content* was already indexed, and its entry if so."""
        entry = self._lookup(content_hash(content))
        return entry is not None, entry

    def filter_batch(self, files: list[UploadedFile]) -> BatchFilterResult:
        """Split *files* into new ones and duplicates.

        Repeats inside the batch are caught first; the first occurrence
        wins.  The remaining files are checked against the registry.
        """
        unique: list[UploadedFile] = []
        duplicates: list[UploadedFile] = []
        seen: set[str] = set()

        for file in files:
            hashed = file.with_hash()
            digest = hashed.content_hash or content_hash(hashed.content)
            if digest in seen:
                duplicates.append(hashed)
                continue
            seen.add(digest)
            if self._lookup(digest) is not None:
                duplicates.append(hashed)
            else:
                unique.append(hashed)

        if duplicates:
            logger.info(
                "duplicates_filtered",
                total=len(files),
                unique=len(unique),
                duplicates=len(duplicates),
            )
        return BatchFilterResult(unique=unique, duplicates=duplicates)

    def register(self, file: UploadedFile, chunks: list[DocumentChunk]) -> DocumentCacheEntry:
        """Record *file* as indexed together with the hashes of its *chunks*."""
        digest = file.content_hash or content_hash(file.content)
        entry = DocumentCacheEntry(
            content_hash=digest,
            filename=file.name,
            timestamp=self._clock(),
            chunk_count=len(chunks),
            token_count=sum(c.metadata.tokens for c in chunks),
        )
        self._store.put(digest, entry.model_dump(mode="json"))
        for chunk in chunks:
            self._chunk_hashes[content_hash(chunk.content)] = True
        logger.debug("document_registered", filename=file.name, chunks=len(chunks))
        return entry

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def filter_duplicate_chunks(self, chunks: list[DocumentChunk]) -> ChunkFilterResult:
        """Drop chunks whose text was already indexed or repeats within *chunks*."""
        unique: list[DocumentChunk] = []
        seen: set[str] = set()
        duplicate_count = 0
        for chunk in chunks:
            digest = content_hash(chunk.content)
            if digest in seen or digest in self._chunk_hashes:
                duplicate_count += 1
                continue
            seen.add(digest)
            unique.append(chunk)
        return ChunkFilterResult(unique=unique, duplicate_count=duplicate_count)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def cleanup_expired(self) -> int:
        """Evict every expired document entry; return how many were removed."""
        removed = 0
        for key in self._store.keys():
            entry = self._read(key)
            if entry is not None and self._expired(entry):
                self._store.evict(key)
                removed += 1
        if removed:
            self._chunk_hashes.clear()
            logger.info("cache_entries_expired", removed=removed)
        return removed

    def stats(self) -> CacheStats:
        entries = self._entries()
        timestamps = [e.timestamp for e in entries]
        return CacheStats(
            total_documents=len(entries),
            total_chunk_hashes=len(self._chunk_hashes),
            total_chunks=sum(e.chunk_count for e in entries),
            total_tokens=sum(e.token_count for e in entries),
            oldest_entry=min(timestamps) if timestamps else None,
            newest_entry=max(timestamps) if timestamps else None,
        )

    def clear(self) -> None:
        self._store.clear()
        self._chunk_hashes.clear()
        logger.info("cache_cleared")

    def export_entries(self) -> list[dict[str, Any]]:
        """Return the document entries as plain dicts, for backup."""
        return [e.model_dump(mode="json") for e in self._entries()]

    def import_entries(self, entries: list[dict[str, Any]]) -> int:
        """Load entries produced by :meth:`export_entries`, skipping expired ones."""
        imported = 0
        for raw in entries:
            entry = DocumentCacheEntry.model_validate(raw)
            if self._expired(entry):
                continue
            self._store.put(entry.content_hash, entry.model_dump(mode="json"))
            imported += 1
        logger.info("cache_entries_imported", imported=imported, skipped=len(entries) - imported)
        return imported

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expired(self, entry: DocumentCacheEntry) -> bool:
        return self._clock() - entry.timestamp > self._retention_seconds

    def _read(self, key: str) -> DocumentCacheEntry | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        return DocumentCacheEntry.model_validate(raw)

    def _lookup(self, digest: str) -> DocumentCacheEntry | None:
        entry = self._read(digest)
        if entry is None:
            return None
        if self._expired(entry):
            self._store.evict(digest)
            self._chunk_hashes.clear()
            logger.debug("cache_entry_expired", filename=entry.filename)
            return None
        return entry

    def _entries(self) -> list[DocumentCacheEntry]:
        entries = (self._read(k) for k in self._store.keys())
        return [e for e in entries if e is not None and not self._expired(e)]
