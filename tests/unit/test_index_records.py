"""Unit tests for chunk <-> index record conversion."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.models.rag import IndexMatch
from src.services.index_records import chunk_to_record, match_to_chunk
from tests.conftest import make_chunk


class TestChunkToRecord:
    def test_flat_primitive_metadata(self) -> None:
        chunk = make_chunk("Wind turbines spin.", "c1", "doc_wind", [0.1, 0.2], section="Generation", position=2)
        record = chunk_to_record(chunk)

        assert record["id"] == "c1"
        assert record["values"] == [0.1, 0.2]
        meta = record["metadata"]
        assert meta["content"] == "Wind turbines spin."
        assert meta["section"] == "Generation"
        assert meta["timestamp"] == "2024-05-01T00:00:00+00:00"
        assert meta["chunk_index"] == 2
        assert all(isinstance(v, (str, int, float)) for v in meta.values())

    def test_absent_section_left_out(self) -> None:
        record = chunk_to_record(make_chunk("text", score_vector=[1.0]))
        assert "section" not in record["metadata"]

    def test_requires_embedding(self) -> None:
        with pytest.raises(ValueError):
            chunk_to_record(make_chunk("text"))


class TestMatchToChunk:
    def test_restores_chunk_from_record(self) -> None:
        original = make_chunk("Wind turbines spin.", "c1", "doc_wind", [0.1, 0.2], section="Generation", position=1)
        record = chunk_to_record(original)
        match = IndexMatch(id="c1", score=0.9, values=record["values"], metadata=record["metadata"])

        restored = match_to_chunk(match)
        assert restored == original

    def test_lenient_with_missing_and_mistyped_fields(self) -> None:
        match = IndexMatch(
            id="x",
            metadata={"content": "text", "position": "seven", "total_chunks": 0, "timestamp": "not a date"},
        )
        chunk = match_to_chunk(match)

        assert chunk.content == "text"
        assert chunk.metadata.position == 0
        assert chunk.metadata.total_chunks == 1
        assert chunk.metadata.file_type == "unknown"
        assert chunk.metadata.section is None
        assert chunk.embedding is None
        assert chunk.metadata.timestamp.tzinfo is not None

    def test_numeric_strings_are_coerced(self) -> None:
        match = IndexMatch(id="x", metadata={"content": "t", "chunk_index": "3", "tokens": 12.0})
        chunk = match_to_chunk(match)
        assert chunk.metadata.chunk_index == 3
        assert chunk.metadata.tokens == 12
        assert isinstance(chunk.metadata.timestamp, datetime)
        assert chunk.metadata.timestamp <= datetime.now(tz=timezone.utc)
