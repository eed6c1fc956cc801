"""LLM provider adapters.

``OpenAILLMProvider`` covers OpenAI itself and OpenAI-compatible hosts such
as Groq, selected through ``OPENAI_BASE_URL``.
"""

from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
