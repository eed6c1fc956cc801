"""Conversion between :class:`DocumentChunk` and flat vector-index records.

Index metadata must be primitives, so the timestamp travels as an ISO-8601
string and an absent section is simply left out.  Reading a match back is
lenient: missing or mistyped fields fall back to empty values instead of
raising, since the index may hold records written by older versions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from src.models.documents import ChunkMetadata, DocumentChunk
from src.models.rag import IndexMatch


def chunk_to_record(chunk: DocumentChunk) -> dict[str, Any]:
    """Build the ``{id, values, metadata}`` record upserted for *chunk*."""
    if chunk.embedding is None:
        raise ValueError(f"Chunk {chunk.id} has no embedding")
    meta = chunk.metadata
    metadata: dict[str, Any] = {
        "content": chunk.content,
        "source": meta.source,
        "title": meta.title,
        "position": meta.position,
        "chunk_index": meta.chunk_index,
        "total_chunks": meta.total_chunks,
        "document_id": meta.document_id,
        "timestamp": meta.timestamp.isoformat(),
        "file_type": meta.file_type,
        "tokens": meta.tokens,
    }
    if meta.section is not None:
        metadata["section"] = meta.section
    return {"id": chunk.id, "values": chunk.embedding, "metadata": metadata}


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return default


def _as_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(tz=timezone.utc)


def match_to_chunk(match: IndexMatch) -> DocumentChunk:
    """Rebuild a chunk from an index match, caching the stored vector on it."""
    raw = match.metadata
    section = raw.get("section")
    metadata = ChunkMetadata(
        source=_as_str(raw.get("source")),
        title=_as_str(raw.get("title")),
        section=str(section) if section not in (None, "") else None,
        position=_as_int(raw.get("position")),
        chunk_index=_as_int(raw.get("chunk_index")),
        total_chunks=max(_as_int(raw.get("total_chunks"), 1), 1),
        document_id=_as_str(raw.get("document_id")),
        timestamp=_as_timestamp(raw.get("timestamp")),
        file_type=_as_str(raw.get("file_type"), "unknown") or "unknown",
        tokens=_as_int(raw.get("tokens")),
    )
    return DocumentChunk(
        id=match.id,
        content=_as_str(raw.get("content")),
        metadata=metadata,
        embedding=list(match.values) if match.values else None,
    )
