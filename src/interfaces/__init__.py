"""Public interface definitions for the external collaborators.

The core never talks to an SDK directly: it calls the abstract base
classes below, and ``src/main.py`` injects the concrete adapters from
``src/providers/``.  Tests inject fakes through the same seams.

CONCRETE PROVIDER MAP:
    Interface               →  Concrete implementation (in src/providers/)
    ──────────────────────────────────────────────────────────────────
    IEmbeddingProvider      →  OpenAIEmbeddingProvider
    ILLMProvider            →  OpenAILLMProvider
    IRerankingProvider      →  CohereRerankProvider
    IVectorIndexProvider    →  ChromaDBVectorIndex
    ITextExtractor          →  DocumentTextExtractor
    IKeyValueStore          →  JsonFileKeyValueStore, InMemoryKeyValueStore
    IJobStore               →  InMemoryJobStore
"""

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.reranking_provider import IRerankingProvider
from src.interfaces.store_provider import IJobStore, IKeyValueStore
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.vector_index_provider import IVectorIndexProvider

__all__ = [
    "IEmbeddingProvider",
    "IJobStore",
    "IKeyValueStore",
    "ILLMProvider",
    "IRerankingProvider",
    "ITextExtractor",
    "IVectorIndexProvider",
]
