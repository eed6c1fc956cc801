"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Pointing ``openai_base_url`` at another OpenAI-compatible endpoint (Groq at
``https://api.groq.com/openai/v1``, TogetherAI, Fireworks) lets this one
adapter serve any of them; only the model name changes.

Both calls carry a client-side timeout (``llm_timeout_seconds``, default
30 s).  A timeout surfaces as :class:`GenerationError`, which the query
service turns into the apology answer.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from urllib.parse import urlparse

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import LLMResponse, TokenUsage
from src.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)


def _label_for(base_url: str) -> str:
    """Derive a provider label from the endpoint host, e.g. ``groq``."""
    if not base_url:
        return "openai"
    host = urlparse(base_url).hostname or ""
    parts = [p for p in host.split(".") if p not in ("api", "www", "com", "ai", "io")]
    return parts[0] if parts else "openai-compatible"


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API."""

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._timeout = settings.llm_timeout_seconds
        if client is None:
            client_kwargs: dict = {
                "api_key": settings.openai_api_key,
                "timeout": openai.Timeout(self._timeout, connect=5.0),
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)
        self._client = client
        self._model = settings.openai_text_model
        self._provider_label = _label_for(settings.openai_base_url)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise GenerationError(
                message=f"{self._provider_label} timed out after {self._timeout:g}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError(
                message=f"{self._provider_label} returned an empty response",
                provider_name=self.get_provider_name(),
            )

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                input=response.usage.prompt_tokens or 0,
                output=response.usage.completion_tokens or 0,
                total=response.usage.total_tokens or 0,
            )
        logger.info(
            "llm_completion",
            model=self._model,
            provider=self._provider_label,
            tokens=usage.total,
        )
        return LLMResponse(text=content, usage=usage)

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for event in response:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APITimeoutError as exc:
            raise GenerationError(
                message=f"{self._provider_label} stream timed out after {self._timeout:g}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} stream error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return self._provider_label

    def get_model_name(self) -> str:
        return self._model

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
