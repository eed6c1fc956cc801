"""Cohere rerank provider over the Cohere REST API.

Implements :class:`IRerankingProvider` with a plain ``httpx.AsyncClient``
POST to ``/v1/rerank``.  The client is injected so connection pooling is
shared with the rest of the process and tests can use
``httpx.MockTransport``.

Request::

    {"model": "rerank-english-v3.0", "query": "...",
     "documents": ["...", ...], "top_n": 3}

Response::

    {"results": [{"index": 2, "relevance_score": 0.93}, ...]}
"""

from __future__ import annotations

from typing import Any

import httpx

from src.interfaces.reranking_provider import IRerankingProvider
from src.models.rag import RerankScore
from src.utils.errors import RateLimitError, RerankError
from src.utils.logging import get_logger


class CohereRerankProvider(IRerankingProvider):
    """Reranking provider backed by Cohere's rerank endpoint.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient``.
    api_key:
        Cohere API key, sent as a bearer token.
    model:
        Rerank model name (default ``rerank-english-v3.0``).
    base_url:
        API root, without the ``/v1`` suffix.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = "rerank-english-v3.0",
        base_url: str = "https://api.cohere.com",
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/v1/rerank"
        self._timeout = timeout
        self._logger = get_logger(__name__)

    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankScore]:
        if not documents:
            return []

        payload: dict[str, Any] = {
            "model": self._model,
            "query": query,
            "documents": documents,
            "top_n": top_n,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = await self._http.post(
                self._url, json=payload, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            raise RerankError(
                message=f"Cohere rerank request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 429:
            raise RateLimitError(
                message="Cohere rerank rate limit exceeded",
                provider_name=self.get_provider_name(),
            )
        if response.status_code != 200:
            raise RerankError(
                message=f"Cohere rerank returned HTTP {response.status_code}: {response.text[:200]}",
                provider_name=self.get_provider_name(),
            )

        try:
            results = response.json()["results"]
            scores = [
                RerankScore(index=int(item["index"]), relevance_score=float(item["relevance_score"]))
                for item in results
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise RerankError(
                message=f"Cohere rerank returned an unexpected body: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        self._logger.debug(
            "cohere_rerank",
            model=self._model,
            documents=len(documents),
            returned=len(scores),
        )
        return scores

    def get_provider_name(self) -> str:
        return "cohere"

    def get_model_name(self) -> str:
        return self._model
