"""Shared pytest fixtures for the citebase test suite.

The four external services are replaced by in-memory fakes implementing
the same interfaces.  Token counting is pinned to the approximate
counter so no test downloads tokenizer files.
"""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

import pytest
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.reranking_provider import IRerankingProvider
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.documents import ChunkMetadata, DocumentChunk, UploadedFile
from src.models.rag import IndexMatch, IndexStats, LLMResponse, RerankScore, RetrievalResult, TokenUsage
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.token_counter import ApproximateTokenCounter
from src.utils.errors import EmbeddingError, GenerationError, RerankError

FAKE_DIMENSION = 32


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------


def bag_of_words_vector(text: str, dimension: int = FAKE_DIMENSION) -> list[float]:
    """Deterministic unit vector: hashed word counts, so similar texts are close."""
    vector = [0.0] * dimension
    for word in re.findall(r"\w+", text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Embeds with :func:`bag_of_words_vector`; texts in ``fail_texts`` always fail."""

    def __init__(self, fail_texts: set[str] | None = None, fail_all: bool = False) -> None:
        self.fail_texts = fail_texts or set()
        self.fail_all = fail_all
        self.calls: list[str] = []

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_all or text in self.fail_texts:
            raise EmbeddingError(message=f"simulated failure for {text[:20]!r}", provider_name="fake")
        return bag_of_words_vector(text)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    def get_dimension(self) -> int:
        return FAKE_DIMENSION

    def get_provider_name(self) -> str:
        return "fake-embedding"


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    return dot / (na * nb) if na and nb else 0.0


class FakeVectorIndex(IVectorIndexProvider):
    """Brute-force cosine index over a dict of records."""

    def __init__(self, fail_upsert: bool = False) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.fail_upsert = fail_upsert
        self.upsert_calls = 0

    async def upsert(self, records: list[dict[str, Any]]) -> int:
        self.upsert_calls += 1
        if self.fail_upsert:
            raise RuntimeError("index unavailable")
        for record in records:
            self.records[record["id"]] = record
        return len(records)

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
        include_values: bool = False,
    ) -> list[IndexMatch]:
        scored = []
        for record in self.records.values():
            if filter and any(record["metadata"].get(k) != v for k, v in filter.items()):
                continue
            scored.append((_cosine(vector, record["values"]), record))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            IndexMatch(
                id=record["id"],
                score=score,
                values=record["values"] if include_values else None,
                metadata=dict(record["metadata"]),
            )
            for score, record in scored[:top_k]
        ]

    async def delete_many(self, ids: list[str]) -> None:
        for record_id in ids:
            self.records.pop(record_id, None)

    async def describe_stats(self) -> IndexStats:
        return IndexStats(total_vectors=len(self.records), dimension=FAKE_DIMENSION, index_name="fake")

    async def clear(self) -> None:
        self.records.clear()

    def get_provider_name(self) -> str:
        return "fake-index"


class FakeLLMProvider(ILLMProvider):
    """Returns a canned answer citing ``[1]``; records the prompts it saw."""

    def __init__(self, answer: str = "Solar panels convert sunlight into electricity [1].", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.prompts: list[tuple[str, str]] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        self.prompts.append((system_prompt, user_prompt))
        if self.fail:
            raise GenerationError(message="simulated timeout", provider_name="fake")
        return LLMResponse(text=self.answer, usage=TokenUsage(input=120, output=15, total=135))

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        self.prompts.append((system_prompt, user_prompt))
        if self.fail:
            raise GenerationError(message="simulated timeout", provider_name="fake")
        for word in self.answer.split(" "):
            yield word + " "

    def get_provider_name(self) -> str:
        return "fake-llm"


class FakeRerankProvider(IRerankingProvider):
    """Scores documents by a fixed list, or in reverse input order by default."""

    def __init__(self, scores: list[float] | None = None, fail: bool = False) -> None:
        self.scores = scores
        self.fail = fail
        self.requests: list[tuple[str, list[str], int]] = []

    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankScore]:
        self.requests.append((query, documents, top_n))
        if self.fail:
            raise RerankError(message="simulated outage", provider_name="fake")
        scores = self.scores or [float(i + 1) / len(documents) for i in range(len(documents))]
        ranked = sorted(range(len(documents)), key=lambda i: scores[i], reverse=True)
        return [RerankScore(index=i, relevance_score=scores[i]) for i in ranked[:top_n]]

    def get_provider_name(self) -> str:
        return "fake-reranker"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_chunk(
    content: str,
    chunk_id: str = "c1",
    document_id: str = "doc_1",
    score_vector: list[float] | None = None,
    section: str | None = None,
    position: int = 0,
) -> DocumentChunk:
    return DocumentChunk(
        id=chunk_id,
        content=content,
        metadata=ChunkMetadata(
            source=f"{document_id}.txt",
            title=document_id.replace("_", " "),
            section=section,
            position=position,
            chunk_index=position,
            total_chunks=max(position + 1, 1),
            document_id=document_id,
            timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
            file_type="text",
            tokens=len(content.split()),
        ),
        embedding=score_vector,
    )


def make_result(content: str, score: float, chunk_id: str = "c1", document_id: str = "doc_1") -> RetrievalResult:
    return RetrievalResult(chunk=make_chunk(content, chunk_id, document_id), score=score)


def make_file(name: str, content: str) -> UploadedFile:
    return UploadedFile(
        name=name,
        size=len(content.encode("utf-8")),
        media_type="text/plain",
        content=content,
        last_modified=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


_ENERGY_SENTENCES = [
    "Photovoltaic modules convert incoming sunlight directly into electrical current.",
    "Wind turbines capture kinetic energy from moving air and drive large generators.",
    "Hydroelectric stations release stored reservoir water through spinning turbines.",
    "Geothermal plants draw steam from deep underground heat to produce electricity.",
    "Battery storage smooths intermittent supply by shifting surplus generation to evening peaks.",
    "Transmission operators balance regional demand against forecasted renewable output.",
    "Community solar cooperatives let apartment residents share the output of one array.",
    "Offshore wind farms benefit from stronger and steadier winds than onshore sites.",
    "Green hydrogen produced by electrolysis can decarbonize heavy industrial processes.",
    "Smart meters give households detailed feedback about their hourly consumption.",
]


def build_document(target_tokens: int, counter: ApproximateTokenCounter | None = None) -> str:
    """Sentences about renewable energy, appended until *target_tokens* is reached."""
    counter = counter or ApproximateTokenCounter()
    sentences: list[str] = []
    i = 0
    while counter.count(" ".join(sentences)) < target_tokens:
        sentences.append(f"{_ENERGY_SENTENCES[i % len(_ENERGY_SENTENCES)][:-1]} (note {i}).")
        i += 1
    return " ".join(sentences)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _uncached_structlog_loggers(monkeypatch: pytest.MonkeyPatch):
    """Keep module-level loggers from pinning a stream configured by an earlier test."""
    configure = structlog.configure
    configure(cache_logger_on_first_use=False)
    monkeypatch.setattr(
        structlog, "configure", lambda **kwargs: configure(**{**kwargs, "cache_logger_on_first_use": False})
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def token_counter() -> ApproximateTokenCounter:
    return ApproximateTokenCounter()


@pytest.fixture
def chunker(token_counter: ApproximateTokenCounter) -> TextChunker:
    return TextChunker(chunk_size=300, overlap=30, max_chunks=500, min_chunk_tokens=30, token_counter=token_counter)


@pytest.fixture
def fake_embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def fake_llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def fake_reranker() -> FakeRerankProvider:
    return FakeRerankProvider()


@pytest.fixture
def sample_document() -> str:
    """Roughly 900 tokens of plain prose without headers."""
    return build_document(900)


@pytest.fixture
def sectioned_document() -> str:
    """A markdown document with a preamble and three sections of uneven length."""
    intro = " ".join(_ENERGY_SENTENCES[:3])
    body = build_document(700)
    tail = " ".join(_ENERGY_SENTENCES[5:])
    return (
        "Renewable Energy Primer\r\n\r\n\r\n"
        f"{intro}\n\n"
        "# Generation\n\n"
        f"{body}\n\n"
        "# Storage\n\n"
        f"{tail}\n\n"
        "## Notes\n\n"
        "Short closing remark."
    )
