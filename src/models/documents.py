"""Document-side data models: uploaded files and the chunks cut from them.

An :class:`UploadedFile` arrives from the upload boundary already carrying
its extracted text.  The chunker turns it into :class:`DocumentChunk`
objects; the embedding stage attaches vectors via ``model_copy`` and the
orchestrator hands the embedded chunks to the vector index.

All models are frozen.  ``total_chunks`` is only known after the last
chunk of a document has been cut, so the chunker fills it in only then.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def content_hash(content: str) -> str:
    """Return the SHA-256 hex digest of *content* with surrounding whitespace removed."""
    return hashlib.sha256(content.strip().encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# UploadedFile -- one user-supplied document plus its extracted text.
# ---------------------------------------------------------------------------
class UploadedFile(BaseModel):
    """A document received at the upload boundary.

    ``content`` holds the text produced by the text extractor, not the raw
    bytes.  Once ``content_hash`` is set the file is treated as immutable;
    :meth:`with_hash` is the only way to set it.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Original filename, including extension.")
    size: int = Field(default=0, ge=0, description="Size of the original upload in bytes.")
    media_type: str = Field(default="text/plain", description="MIME type reported at upload.")
    content: str = Field(description="Extracted plain text of the document.")
    last_modified: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc),
        description="Last-modified timestamp reported at upload.",
    )
    content_hash: str | None = Field(
        default=None,
        description="SHA-256 of the trimmed content, set once by with_hash().",
    )

    def with_hash(self) -> UploadedFile:
        """Return this file with ``content_hash`` populated (no-op if already set)."""
        if self.content_hash is not None:
            return self
        return self.model_copy(update={"content_hash": content_hash(self.content)})


# ---------------------------------------------------------------------------
# ChunkMetadata -- provenance and position of one chunk.
# ---------------------------------------------------------------------------
class ChunkMetadata(BaseModel):
    """Provenance and position of a chunk within its document.

    Invariant: ``chunk_index < total_chunks`` for every chunk sharing a
    ``document_id``, and ``total_chunks`` is identical across them.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="Filename the chunk was cut from.")
    title: str = Field(description="Human-readable document title.")
    section: str | None = Field(default=None, description="Header of the enclosing section.")
    position: int = Field(default=0, ge=0, description="Section offset plus chunk index.")
    chunk_index: int = Field(default=0, ge=0, description="0-based index within the document.")
    total_chunks: int = Field(default=1, ge=1, description="Number of chunks in the document.")
    document_id: str = Field(description="Identifier shared by all chunks of one document.")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc),
        description="Document timestamp (upload last-modified time).",
    )
    file_type: str = Field(default="unknown", description="text, markdown, pdf, docx or unknown.")
    tokens: int = Field(default=0, ge=0, description="Measured token count of the chunk.")


# ---------------------------------------------------------------------------
# DocumentChunk -- the unit of embedding and retrieval.
# ---------------------------------------------------------------------------
class DocumentChunk(BaseModel):
    """A bounded, overlapping slice of a document's text.

    ``embedding`` is ``None`` until the embedding stage succeeds for this
    chunk.  Chunks returned by the retriever carry the vector stored in the
    index so diversity scoring can reuse it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique chunk identifier, also the vector id.")
    content: str = Field(description="The chunk text.")
    metadata: ChunkMetadata
    embedding: list[float] | None = Field(default=None, description="Embedding vector, if any.")

    def with_embedding(self, embedding: list[float]) -> DocumentChunk:
        return self.model_copy(update={"embedding": embedding})
