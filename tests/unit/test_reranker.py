"""Unit tests for RerankerService and the Cohere REST provider."""

from __future__ import annotations

import json

import httpx
import pytest

from src.providers.reranker.cohere_provider import CohereRerankProvider
from src.services.reranker import RerankerService
from src.utils.errors import RateLimitError, RerankError
from tests.conftest import FakeRerankProvider, make_result


def _results() -> list:
    return [
        make_result("first passage", 0.9, "c1"),
        make_result("second passage", 0.8, "c2"),
        make_result("third passage", 0.7, "c3"),
    ]


# ======================================================================
# RerankerService
# ======================================================================


class TestRerankerService:
    @pytest.mark.asyncio
    async def test_reorders_by_provider_score(self) -> None:
        service = RerankerService(FakeRerankProvider(scores=[0.1, 0.3, 0.95]))
        reranked = await service.rerank("q", _results(), top_n=2)

        assert [r.chunk.id for r in reranked] == ["c3", "c2"]
        assert reranked[0].reranked_score == pytest.approx(0.95)
        assert reranked[0].score == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_provider_failure_returns_original_prefix(self) -> None:
        service = RerankerService(FakeRerankProvider(fail=True))
        reranked = await service.rerank("q", _results(), top_n=2)
        assert [r.chunk.id for r in reranked] == ["c1", "c2"]
        assert all(r.reranked_score is None for r in reranked)

    @pytest.mark.asyncio
    async def test_no_provider_returns_original_prefix(self) -> None:
        service = RerankerService(None)
        assert service.enabled is False
        assert [r.chunk.id for r in await service.rerank("q", _results(), top_n=1)] == ["c1"]

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        assert await RerankerService(FakeRerankProvider()).rerank("q", [], top_n=3) == []

    @pytest.mark.asyncio
    async def test_document_cap(self) -> None:
        provider = FakeRerankProvider()
        service = RerankerService(provider, max_documents=2)
        await service.rerank("q", _results(), top_n=3)
        _, documents, top_n = provider.requests[0]
        assert documents == ["first passage", "second passage"]
        assert top_n == 2

    def test_rerank_cost(self) -> None:
        assert RerankerService.rerank_cost(0) == 0.0
        assert RerankerService.rerank_cost(3) == pytest.approx(0.001)
        assert RerankerService.rerank_cost(101) == pytest.approx(0.002)


# ======================================================================
# CohereRerankProvider
# ======================================================================


def _provider(handler) -> CohereRerankProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CohereRerankProvider(http_client=client, api_key="co-test", base_url="https://cohere.test")


class TestCohereRerankProvider:
    @pytest.mark.asyncio
    async def test_request_and_response(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"results": [{"index": 1, "relevance_score": 0.9}, {"index": 0, "relevance_score": 0.2}]},
            )

        scores = await _provider(handler).rerank("wind?", ["a", "b"], top_n=2)

        assert captured["url"] == "https://cohere.test/v1/rerank"
        assert captured["auth"] == "Bearer co-test"
        assert captured["body"] == {
            "model": "rerank-english-v3.0",
            "query": "wind?",
            "documents": ["a", "b"],
            "top_n": 2,
        }
        assert [(s.index, s.relevance_score) for s in scores] == [(1, 0.9), (0, 0.2)]

    @pytest.mark.asyncio
    async def test_rate_limit(self) -> None:
        provider = _provider(lambda request: httpx.Response(429, json={}))
        with pytest.raises(RateLimitError):
            await provider.rerank("q", ["a"], top_n=1)

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        provider = _provider(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(RerankError, match="HTTP 500"):
            await provider.rerank("q", ["a"], top_n=1)

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        provider = _provider(lambda request: httpx.Response(200, json={"unexpected": []}))
        with pytest.raises(RerankError):
            await provider.rerank("q", ["a"], top_n=1)

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(RerankError):
            await _provider(handler).rerank("q", ["a"], top_n=1)

    @pytest.mark.asyncio
    async def test_no_documents_skips_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await _provider(handler).rerank("q", [], top_n=1) == []
