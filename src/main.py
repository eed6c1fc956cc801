"""citebase composition root.

Builds every provider and service exactly once and wires them together by
constructor injection.  There are no module-level singletons: callers (the
CLI, tests, an embedding application) hold the returned
:class:`Application` and pass its components around.

Dependency graph (no cycles)::

    TextChunker, DocumentCache                  ← no core dependencies
    EmbeddingBatchManager                       ← IEmbeddingProvider
    Retriever                                   ← EmbeddingBatchManager, IVectorIndexProvider
    RerankerService                             ← IRerankingProvider (optional)
    AnswerSynthesizer                           ← ILLMProvider
    RAGService                                  ← all of the query-side components
    JobOrchestrator                             ← all of the ingestion-side components
    EvaluationService                           ← RAGService, JobOrchestrator
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.reranking_provider import IRerankingProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.pipeline.job_orchestrator import JobOrchestrator
from src.pipeline.progress_bus import ProgressBus
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.extraction.document_extractor import DocumentTextExtractor
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.reranker.cohere_provider import CohereRerankProvider
from src.providers.store.file_store import JsonFileKeyValueStore
from src.providers.store.memory_store import InMemoryJobStore
from src.providers.vector_index.chromadb_index import ChromaDBVectorIndex
from src.services.answer_synthesizer import AnswerSynthesizer
from src.services.dedup_cache import DocumentCache
from src.services.embedding_batch import EmbeddingBatchManager
from src.services.evaluation import EvaluationService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.token_counter import TokenCounter, build_token_counter
from src.services.rag_service import RAGService
from src.services.reranker import RerankerService
from src.services.retriever import Retriever
from src.services.validation import InputValidator
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass
class Application:
    """Every long-lived component of a running citebase process."""

    settings: Settings
    progress_bus: ProgressBus
    orchestrator: JobOrchestrator
    rag_service: RAGService
    document_cache: DocumentCache
    chunker: TextChunker
    text_extractor: ITextExtractor
    validator: InputValidator
    vector_index: IVectorIndexProvider
    http_client: httpx.AsyncClient
    evaluation: EvaluationService

    async def aclose(self) -> None:
        """Stop background work and release network resources."""
        await self.orchestrator.shutdown()
        await self.http_client.aclose()


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(settings: Settings) -> IEmbeddingProvider:
    if not settings.openai_api_key:
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for embeddings.",
            provider_name="openai",
        )
    return OpenAIEmbeddingProvider(settings=settings)


def _build_llm_provider(settings: Settings) -> ILLMProvider:
    if not settings.has_generation():
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for answer generation.",
            provider_name="openai",
        )
    return OpenAILLMProvider(settings=settings)


def _build_reranking_provider(settings: Settings, http_client: httpx.AsyncClient) -> IRerankingProvider | None:
    if not settings.has_reranker():
        _logger.info("reranker_disabled", msg="COHERE_API_KEY not set; results keep retrieval order.")
        return None
    return CohereRerankProvider(
        http_client=http_client,
        api_key=settings.cohere_api_key,
        model=settings.rerank_model,
        base_url=settings.cohere_base_url,
        timeout=settings.rerank_timeout_seconds,
    )


def _configuration_summary(settings: Settings) -> dict[str, Any]:
    return {
        "chunking": {
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
            "max_chunks_per_document": settings.max_chunks_per_document,
            "min_chunk_tokens": settings.min_chunk_tokens,
        },
        "embedding": {
            "model": settings.openai_embedding_model,
            "dimension": settings.embedding_dimension,
            "batch_size": settings.embedding_batch_size,
            "parallel_batches": settings.embedding_parallel_batches,
            "fallback_mode": settings.embedding_fallback_mode,
        },
        "retrieval": {
            "top_k": settings.retrieval_top_k,
            "reranked_k": settings.retrieval_reranked_k,
            "mmr_lambda": settings.mmr_lambda,
            "similarity_threshold": settings.similarity_threshold,
        },
        "llm": {
            "model": settings.openai_text_model,
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
        },
        "reranker": {"model": settings.rerank_model, "enabled": settings.has_reranker()},
        "jobs": {"max_concurrent_jobs": settings.max_concurrent_jobs},
        "cache": {
            "retention_hours": settings.cache_retention_hours,
            "registry_path": settings.document_registry_path(),
        },
    }


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_application(
    settings: Settings,
    *,
    embedding_provider: IEmbeddingProvider | None = None,
    llm_provider: ILLMProvider | None = None,
    reranking_provider: IRerankingProvider | None = None,
    vector_index: IVectorIndexProvider | None = None,
    token_counter: TokenCounter | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Application:
    """Construct and wire every component for *settings*.

    Any external collaborator may be passed in; the rest are built from
    *settings*.  A reranking provider is built only when a Cohere key is
    configured and none was passed.

    Raises
    ------
    ConfigurationError
        If a required provider can be neither built nor was supplied.
    """
    http = http_client or httpx.AsyncClient(timeout=30.0)

    embedding = embedding_provider or _build_embedding_provider(settings)
    llm = llm_provider or _build_llm_provider(settings)
    reranking = reranking_provider or _build_reranking_provider(settings, http)
    index = vector_index or ChromaDBVectorIndex(
        persist_directory=settings.chromadb_persist_dir,
        collection_name=settings.chromadb_collection,
        dimension=settings.embedding_dimension,
        upsert_batch_size=settings.index_upsert_batch_size,
    )

    chunker = TextChunker(
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        separators=settings.chunk_separators,
        max_chunks=settings.max_chunks_per_document,
        min_chunk_tokens=settings.min_chunk_tokens,
        token_counter=token_counter or build_token_counter(settings.tokenizer_model),
    )
    cache = DocumentCache(
        JsonFileKeyValueStore(settings.document_registry_path()),
        retention_hours=settings.cache_retention_hours,
        chunk_hash_limit=settings.cache_chunk_hash_limit,
    )
    embedder = EmbeddingBatchManager(
        embedding,
        batch_size=settings.embedding_batch_size,
        parallel_batches=settings.embedding_parallel_batches,
        max_retries=settings.embedding_max_retries,
        retry_delay_ms=settings.embedding_retry_delay_ms,
        batch_delay_ms=settings.embedding_batch_delay_ms,
        dimension=settings.embedding_dimension,
    )
    retriever = Retriever(
        embedder,
        index,
        top_k=settings.retrieval_top_k,
        mmr_lambda=settings.mmr_lambda,
        similarity_threshold=settings.similarity_threshold,
        hybrid_vector_weight=settings.hybrid_vector_weight,
    )
    validator = InputValidator(
        max_query_length=settings.max_query_length,
        max_file_size=settings.max_file_size_bytes,
        allowed_extensions=settings.allowed_extensions,
    )
    rag_service = RAGService(
        embedder=embedder,
        retriever=retriever,
        reranker=RerankerService(reranking, max_documents=settings.rerank_max_documents),
        synthesizer=AnswerSynthesizer(
            llm,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        ),
        vector_index=index,
        validator=validator,
        top_k=settings.retrieval_top_k,
        reranked_k=settings.retrieval_reranked_k,
        configuration=_configuration_summary(settings),
    )

    bus = ProgressBus()
    orchestrator = JobOrchestrator(
        document_cache=cache,
        chunker=chunker,
        embedding_manager=embedder,
        vector_index=index,
        job_store=InMemoryJobStore(),
        progress_bus=bus,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        max_jobs_history=settings.max_jobs_history,
        retention_hours=settings.job_retention_hours,
        cleanup_interval_seconds=settings.job_cleanup_interval_seconds,
        embedding_fallback_mode=settings.embedding_fallback_mode,
    )

    _logger.info(
        "application_built",
        embedding_provider=embedding.get_provider_name(),
        llm_provider=llm.get_provider_name(),
        reranker=reranking.get_provider_name() if reranking else None,
        vector_index=index.get_provider_name(),
        token_counter=chunker.token_counter_name,
    )
    return Application(
        settings=settings,
        progress_bus=bus,
        orchestrator=orchestrator,
        rag_service=rag_service,
        document_cache=cache,
        chunker=chunker,
        text_extractor=DocumentTextExtractor(),
        validator=validator,
        vector_index=index,
        http_client=http,
        evaluation=EvaluationService(rag_service, orchestrator),
    )
