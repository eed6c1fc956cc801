"""Vector index provider implementations.

ChromaDB is the bundled implementation: local, persistent, cosine space.
Another index (Qdrant, Pinecone, pgvector) only needs a class implementing
IVectorIndexProvider wired in main.py.
"""

from src.providers.vector_index.chromadb_index import ChromaDBVectorIndex

__all__ = ["ChromaDBVectorIndex"]
