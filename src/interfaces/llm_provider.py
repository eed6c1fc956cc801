"""Abstract base class for text-generation service providers.

The answer synthesizer sends a system prompt and a user prompt and expects
the generated text plus token usage back, either in one piece
(:meth:`ILLMProvider.complete`) or incrementally (:meth:`ILLMProvider.stream`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from src.models.rag import LLMResponse


# Concrete implementations: OpenAILLMProvider (OpenAI, Groq, any OpenAI-compatible host)
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by the answer synthesizer."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Generate a complete response.

        Parameters
        ----------
        system_prompt:
            The instruction message that sets the model's behaviour.
        user_prompt:
            The prompt carrying the context block and the question.
        temperature:
            Sampling temperature.
        max_tokens:
            Upper bound on generated tokens.

        Returns
        -------
        LLMResponse
            Generated text and token usage.

        Raises
        ------
        src.utils.errors.GenerationError
            If the call fails, times out, or returns no text.
        """

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Yield the response text incrementally as the model produces it.

        Raises :class:`~src.utils.errors.GenerationError` from the iterator
        if the call fails part-way.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"`` or ``"groq"``."""
