"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Works against the OpenAI API or any OpenAI-compatible host (TogetherAI,
Fireworks, a local gateway) via ``openai_embedding_base_url`` /
``openai_base_url``.

``text-embedding-3-*`` models accept a ``dimensions`` argument, so the
configured ``embedding_dimension`` is requested directly and the vectors
always match the index.  Other models are used at their native size and
the configured dimension must match it.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Models that support shortening vectors through the ``dimensions`` field.
_SHORTENABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API."""

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._model = settings.openai_embedding_model
        self._dimension = settings.embedding_dimension
        base_url = settings.openai_embedding_base_url or settings.openai_base_url

        if client is None:
            client_kwargs: dict = {"api_key": settings.openai_api_key}
            if base_url:
                client_kwargs["base_url"] = base_url
            client = openai.AsyncOpenAI(**client_kwargs)
        self._client = client
        self._provider_label = "openai-compatible_embedding" if base_url else "openai_embedding"

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, splitting into requests of at most 2048 inputs."""
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
            batch = texts[start : start + _OPENAI_BATCH_LIMIT]
            kwargs: dict = {"input": batch, "model": self._model}
            if self._model in _SHORTENABLE_MODELS:
                kwargs["dimensions"] = self._dimension
            try:
                response = await self._client.embeddings.create(**kwargs)
            except openai.RateLimitError as exc:
                raise RateLimitError(
                    message=f"{self._provider_label} rate limited: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            except openai.APIError as exc:
                raise EmbeddingError(
                    message=f"{self._provider_label} API error: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

            vectors.extend(item.embedding for item in response.data)
            logger.debug(
                "openai_embedding_batch",
                model=self._model,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
        return vectors

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def get_model_name(self) -> str:
        return self._model
