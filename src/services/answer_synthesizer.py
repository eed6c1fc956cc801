"""Citation-preserving answer generation.

The retrieved results are numbered in rank order and shown to the model as
``[1] ...``, ``[2] ...``.  The model is told to cite with the same
brackets, so ``[n]`` in the answer always refers to ``citations[n - 1]``.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator

import structlog

from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import (
    Citation,
    RetrievalResult,
    SourceDocument,
    SynthesizedAnswer,
    TokenUsage,
)

logger = structlog.get_logger(logger_name=__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on the provided context.\n"
    "Always include inline citations [1], [2], etc. for each piece of information you "
    "reference from the context.\n"
    "If you cannot answer based on the provided context, say so clearly.\n"
    "Be concise but comprehensive in your responses.\n"
    "Provide accurate, well-structured answers with proper citations."
)

NO_INFORMATION_ANSWER = (
    "I don't have enough relevant information in my knowledge base to answer your "
    "question. Please try uploading relevant documents or rephrasing your question."
)

APOLOGY_ANSWER = (
    "I apologize, but I encountered an error while processing your query. "
    "Please try again."
)

# Blended USD rate per generated or prompt token.
LLM_COST_PER_TOKEN = 0.69 / 1_000_000

_CITATION_MARKER = re.compile(r"\[(\d+)\]")
_DECLINE_PHRASES = (
    "cannot answer",
    "can't answer",
    "unable to answer",
    "don't have enough",
    "do not have enough",
    "not enough information",
    "does not contain",
    "doesn't contain",
)


def build_context(results: list[RetrievalResult]) -> str:
    """Numbered context block, one ``[n] content`` entry per result."""
    context = "Context information:\n\n"
    for number, result in enumerate(results, start=1):
        context += f"[{number}] {result.chunk.content}\n\n"
    return context


def build_prompt(query: str, context: str) -> str:
    return (
        f"{context}\n\n"
        f"Question: {query}\n\n"
        "Please answer the question based on the provided context. Include inline "
        "citations using the format [1], [2], etc. to reference specific pieces of "
        "information from the context. If you cannot answer the question based on the "
        "provided context, please say so clearly.\n\n"
        "Answer:"
    )


def build_citations(results: list[RetrievalResult]) -> list[Citation]:
    return [
        Citation(
            id=number,
            text=r.chunk.content,
            source=r.chunk.metadata.source,
            section=r.chunk.metadata.section,
            position=r.chunk.metadata.position,
        )
        for number, r in enumerate(results, start=1)
    ]


def build_sources(results: list[RetrievalResult], citations: list[Citation]) -> list[SourceDocument]:
    """Group citations by document, in order of first appearance."""
    grouped: dict[str, SourceDocument] = {}
    for result, citation in zip(results, citations):
        meta = result.chunk.metadata
        source = grouped.get(meta.document_id)
        if source is None:
            grouped[meta.document_id] = SourceDocument(
                id=meta.document_id,
                title=meta.title,
                source=meta.source,
                file_type=meta.file_type,
                citations=[citation.id],
            )
        else:
            grouped[meta.document_id] = source.model_copy(
                update={"citations": [*source.citations, citation.id]}
            )
    return list(grouped.values())


def validate_answer(answer: str, citation_count: int) -> dict[str, object]:
    """Check the citation markers an answer uses against the citations offered.

    Returns a dict with ``has_citations``, ``citation_count`` (markers
    found), ``markers_used`` (distinct ids, ascending), ``out_of_range``
    (ids with no matching citation), ``has_content``, ``is_grounded`` and
    ``is_decline``.
    """
    markers = [int(m) for m in _CITATION_MARKER.findall(answer)]
    used = sorted(set(markers))
    out_of_range = [m for m in used if m < 1 or m > citation_count]
    lowered = answer.lower()
    return {
        "has_citations": bool(markers),
        "citation_count": len(markers),
        "markers_used": used,
        "out_of_range": out_of_range,
        "has_content": len(answer.strip()) > 10,
        "is_grounded": bool(markers) and citation_count > 0 and not out_of_range,
        "is_decline": any(phrase in lowered for phrase in _DECLINE_PHRASES),
    }


class AnswerSynthesizer:
    """Builds the prompt, calls the LLM, and attaches citations and sources.

    Generation failures propagate as :class:`~src.utils.errors.GenerationError`;
    the query service turns them into the apology answer.
    """

    def __init__(self, llm: ILLMProvider, temperature: float = 0.1, max_tokens: int = 1024) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def provider_name(self) -> str:
        return self._llm.get_provider_name()

    async def synthesize(self, query: str, results: list[RetrievalResult]) -> SynthesizedAnswer:
        if not results:
            return SynthesizedAnswer(answer=NO_INFORMATION_ANSWER)

        citations = build_citations(results)
        sources = build_sources(results, citations)
        response = await self._llm.complete(
            SYSTEM_PROMPT,
            build_prompt(query, build_context(results)),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        check = validate_answer(response.text, len(citations))
        if check["out_of_range"]:
            logger.warning("answer_cites_unknown_sources", markers=check["out_of_range"])
        logger.info(
            "answer_synthesized",
            provider=self._llm.get_provider_name(),
            citations=len(citations),
            markers=check["citation_count"],
            tokens=response.usage.total,
        )
        return SynthesizedAnswer(
            answer=response.text,
            citations=citations,
            sources=sources,
            tokens_used=response.usage,
        )

    async def synthesize_stream(
        self,
        query: str,
        results: list[RetrievalResult],
    ) -> AsyncIterator[str | SynthesizedAnswer]:
        """Yield answer text as it is generated, then the final :class:`SynthesizedAnswer`.

        Streaming responses carry no prompt token count; the output count
        is the number of streamed deltas.
        """
        if not results:
            yield NO_INFORMATION_ANSWER
            yield SynthesizedAnswer(answer=NO_INFORMATION_ANSWER)
            return

        citations = build_citations(results)
        sources = build_sources(results, citations)
        parts: list[str] = []
        async for delta in self._llm.stream(
            SYSTEM_PROMPT,
            build_prompt(query, build_context(results)),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        ):
            parts.append(delta)
            yield delta

        yield SynthesizedAnswer(
            answer="".join(parts),
            citations=citations,
            sources=sources,
            tokens_used=TokenUsage(output=len(parts), total=len(parts)),
        )
