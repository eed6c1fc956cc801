"""Token-aware text chunking with separator-preferring split points.

Splits normalized document text into :class:`~src.models.documents.DocumentChunk`
objects of roughly ``chunk_size`` tokens (default 300) that overlap by
``overlap`` tokens (default 30).

How one document is cut:

1. **Normalize** -- unify line endings, squeeze 3+ newlines to 2, collapse
   runs of spaces/tabs, turn non-breaking spaces into spaces, trim.

2. **Sections** -- try four header styles (``# Markdown``, ``Title\\n===``,
   ``Title\\n---``, ``1. Numbered``) and use whichever matches most often.
   Text before the first header becomes its own section.  Sections too
   small to make a chunk are merged into their neighbour so no text is
   dropped on the floor.

3. **Windows** -- inside a section, the window end is estimated at
   ``chunk_size * 3.5`` characters from the start.  The split point is the
   last occurrence inside the window of the first separator that has one
   (paragraph, line, sentence end, clause, space), else a raw word
   boundary, else the raw offset.  The slice is measured with the real
   token counter: below ``min_chunk_tokens`` a later boundary is tried;
   above 1.5x the target a tighter boundary is tried.  The next window
   starts ``overlap * 3.5`` characters before the split, and always at
   least one character after the previous start.

4. **Cap** -- a document yields at most ``max_chunks`` chunks; anything
   after that is dropped with a ``chunk_limit_reached`` warning.

``total_chunks`` is written once every chunk of the document exists, so
all chunks of a document agree on it and ``chunk_index`` runs 0..n-1.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any

import structlog

from src.models.documents import ChunkMetadata, DocumentChunk, UploadedFile
from src.services.ingestion.token_counter import TokenCounter, build_token_counter

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", "")

_CHARS_PER_TOKEN = 3.5
_OVERSIZE_FACTOR = 1.5

_SECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^#{1,6}[ \t]+(.+)$", re.MULTILINE),
    re.compile(r"^(.+)\n=+$", re.MULTILINE),
    re.compile(r"^(.+)\n-+$", re.MULTILINE),
    re.compile(r"^\d+\.[ \t]+(.+)$", re.MULTILINE),
)

_FILE_TYPES: dict[str, str] = {
    ".txt": "text",
    ".md": "markdown",
    ".pdf": "pdf",
    ".docx": "docx",
}


# ---------------------------------------------------------------------------
# Document-level helpers
# ---------------------------------------------------------------------------

def normalize_text(text: str) -> str:
    """Return *text* with unified line endings and collapsed whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.replace("\u00a0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def title_from_filename(filename: str) -> str:
    """``"release-notes_v2.md"`` → ``"release notes v2"``."""
    stem = re.sub(r"\.[^/.]+$", "", filename)
    return re.sub(r"[-_]", " ", stem)


def file_type_for(filename: str) -> str:
    return _FILE_TYPES.get(PurePath(filename).suffix.lower(), "unknown")


def new_document_id() -> str:
    return f"doc_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class _Section:
    """A titled ``[start, end)`` range of the normalized document."""

    title: str | None
    start: int
    end: int


@dataclass(frozen=True)
class _Piece:
    """An accepted slice ``[start, end)`` of a section's text."""

    start: int
    end: int
    content: str
    tokens: int


class TextChunker:
    """Splits documents into overlapping, token-bounded chunks.

    Parameters
    ----------
    chunk_size:
        Target tokens per chunk.
    overlap:
        Tokens shared by consecutive chunks; must be smaller than
        ``chunk_size``.
    separators:
        Split preferences, strongest first.  The empty string is accepted
        for compatibility and never matches.
    max_chunks:
        Per-document chunk cap.
    min_chunk_tokens:
        Slices below this many tokens are never emitted on their own.
    token_counter:
        Counter used for every measurement this chunker makes.  Built with
        :func:`build_token_counter` when omitted.
    """

    def __init__(
        self,
        chunk_size: int = 300,
        overlap: int = 30,
        separators: list[str] | tuple[str, ...] | None = None,
        max_chunks: int = 500,
        min_chunk_tokens: int = 30,
        token_counter: TokenCounter | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        if max_chunks <= 0:
            raise ValueError("max_chunks must be positive")

        self._chunk_size = chunk_size
        self._overlap = overlap
        self._separators = tuple(separators) if separators is not None else DEFAULT_SEPARATORS
        self._max_chunks = max_chunks
        self._min_tokens = min_chunk_tokens
        self._counter = token_counter or build_token_counter()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def token_counter_name(self) -> str:
        return self._counter.name

    def count_tokens(self, text: str) -> int:
        return self._counter.count(text)

    def process_file(self, file: UploadedFile, document_id: str | None = None) -> list[DocumentChunk]:
        """Chunk an uploaded file, deriving metadata from its name and timestamp."""
        return self.chunk(
            file.content,
            {
                "source": file.name,
                "title": title_from_filename(file.name),
                "document_id": document_id or new_document_id(),
                "timestamp": file.last_modified,
                "file_type": file_type_for(file.name),
            },
        )

    def chunk(self, text: str, base_metadata: dict[str, Any]) -> list[DocumentChunk]:
        """Split *text* into chunks carrying *base_metadata*.

        Parameters
        ----------
        text:
            Raw document text; normalized before splitting.
        base_metadata:
            ``source`` (filename) plus optional ``title``, ``document_id``,
            ``timestamp`` and ``file_type``.  Missing values are derived
            from ``source``.

        Returns
        -------
        list[DocumentChunk]
            Chunks in document order.  Empty or whitespace-only text, or a
            document shorter than ``min_chunk_tokens``, yields ``[]``.
        """
        normalized = normalize_text(text)
        if not normalized:
            return []

        source = str(base_metadata.get("source") or "document")
        title = str(base_metadata.get("title") or title_from_filename(source))
        document_id = str(base_metadata.get("document_id") or new_document_id())
        file_type = str(base_metadata.get("file_type") or file_type_for(source))
        timestamp = base_metadata.get("timestamp") or datetime.now(tz=timezone.utc)

        sections = self._merge_small_sections(normalized, self._split_sections(normalized, title))

        produced: list[tuple[_Section, int, _Piece]] = []
        truncated = False
        for position, section in enumerate(sections):
            remaining = self._max_chunks - len(produced)
            if remaining <= 0:
                truncated = True
                break
            pieces, hit_cap = self._chunk_section(normalized[section.start : section.end], remaining)
            produced.extend((section, position, piece) for piece in pieces)
            if hit_cap:
                truncated = True
                break

        if truncated:
            logger.warning(
                "chunk_limit_reached",
                document_id=document_id,
                source=source,
                max_chunks=self._max_chunks,
            )

        total = len(produced)
        chunks = [
            DocumentChunk(
                id=str(uuid.uuid4()),
                content=piece.content,
                metadata=ChunkMetadata(
                    source=source,
                    title=title,
                    section=section.title,
                    position=position + index,
                    chunk_index=index,
                    total_chunks=max(total, 1),
                    document_id=document_id,
                    timestamp=timestamp,
                    file_type=file_type,
                    tokens=piece.tokens,
                ),
            )
            for index, (section, position, piece) in enumerate(produced)
        ]

        logger.debug(
            "document_chunked",
            document_id=document_id,
            sections=len(sections),
            chunks=total,
            counter=self._counter.name,
        )
        return chunks

    @staticmethod
    def chunk_statistics(chunks: list[DocumentChunk]) -> dict[str, int]:
        """Return count and total/average/min/max token figures for *chunks*."""
        if not chunks:
            return {"total_chunks": 0, "total_tokens": 0, "avg_tokens": 0, "min_tokens": 0, "max_tokens": 0}
        tokens = [c.metadata.tokens for c in chunks]
        return {
            "total_chunks": len(chunks),
            "total_tokens": sum(tokens),
            "avg_tokens": round(sum(tokens) / len(tokens)),
            "min_tokens": min(tokens),
            "max_tokens": max(tokens),
        }

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    @staticmethod
    def _split_sections(text: str, document_title: str) -> list[_Section]:
        best: list[re.Match[str]] = []
        for pattern in _SECTION_PATTERNS:
            matches = list(pattern.finditer(text))
            if len(matches) > len(best):
                best = matches

        if not best:
            return [_Section(document_title, 0, len(text))]

        sections: list[_Section] = []
        if text[: best[0].start()].strip():
            sections.append(_Section(document_title, 0, best[0].start()))
        for i, match in enumerate(best):
            end = best[i + 1].start() if i + 1 < len(best) else len(text)
            header = match.group(1).strip() or f"Section {i + 1}"
            sections.append(_Section(header, match.start(), end))
        return sections

    def _merge_small_sections(self, text: str, sections: list[_Section]) -> list[_Section]:
        """Fold sections below the token floor into the following section."""
        merged: list[_Section] = []
        pending: _Section | None = None
        for section in sections:
            if pending is not None:
                section = _Section(pending.title, pending.start, section.end)
                pending = None
            if self._counter.count(text[section.start : section.end].strip()) < self._min_tokens:
                pending = section
                continue
            merged.append(section)

        if pending is not None:
            if merged:
                last = merged[-1]
                merged[-1] = _Section(last.title, last.start, pending.end)
            else:
                merged.append(pending)
        return merged

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    @staticmethod
    def _chars(tokens: int | float) -> int:
        return int(tokens * _CHARS_PER_TOKEN)

    def _measure(self, text: str, start: int, end: int) -> tuple[str, int]:
        piece = text[start:end].strip()
        return piece, self._counter.count(piece) if piece else 0

    def _chunk_section(self, text: str, limit: int) -> tuple[list[_Piece], bool]:
        """Cut one section into pieces; the flag is True when *limit* stopped it early."""
        window_chars = self._chars(self._chunk_size)
        overlap_chars = self._chars(self._overlap)
        min_chars = self._chars(self._min_tokens)
        length = len(text)

        pieces: list[_Piece] = []
        start = 0
        while start < length:
            if len(pieces) >= limit:
                return pieces, True

            end = min(start + window_chars, length)
            split = self._find_split_point(text, start, end, start)
            piece, tokens = self._measure(text, start, split)
            if not piece:
                start = max(split, start + 1)
                continue

            if tokens < self._min_tokens and split < length:
                # The boundary came too early; require one past the floor.
                floor = min(start + 2 * min_chars, end - 1)
                split = self._find_split_point(text, start, end, floor)
                piece, tokens = self._measure(text, start, split)

            if tokens < self._min_tokens:
                if split >= length:
                    if pieces and pieces[-1].end < length:
                        previous = pieces[-1]
                        content, content_tokens = self._measure(text, previous.start, length)
                        pieces[-1] = _Piece(previous.start, length, content, content_tokens)
                    break
                start = split
                continue

            if tokens > self._chunk_size * _OVERSIZE_FACTOR:
                tighter_end = start + max(1, (split - start) * self._chunk_size // tokens)
                tighter = self._find_split_point(text, start, tighter_end, start)
                tighter_piece, tighter_tokens = self._measure(text, start, tighter)
                if tighter_piece and tighter_tokens >= self._min_tokens:
                    split, piece, tokens = tighter, tighter_piece, tighter_tokens

            pieces.append(_Piece(start, split, piece, tokens))
            if split >= length:
                break
            start = max(start + 1, split - overlap_chars)

        return pieces, False

    def _find_split_point(self, text: str, start: int, end: int, min_split: int) -> int:
        """Return the best split offset in ``(min_split, end]``.

        A window that reaches the end of *text* splits at the end.
        """
        if end >= len(text):
            return len(text)

        for separator in self._separators:
            if not separator:
                continue
            index = text.rfind(separator, 0, end + len(separator))
            if min_split < index < end:
                return index + len(separator)

        for i in range(end, min_split, -1):
            if text[i] in (" ", "\n"):
                return i

        return end
