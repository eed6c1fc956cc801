"""Document chunking for the citebase knowledge base.

- **chunker.py** (``TextChunker``) -- normalizes text, detects sections,
  and cuts ~300-token overlapping windows at paragraph, sentence or word
  boundaries.
- **token_counter.py** -- exact subword counts via HuggingFace
  ``tokenizers`` with a heuristic fallback.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.token_counter import (
    ApproximateTokenCounter,
    SubwordTokenCounter,
    build_token_counter,
)

__all__ = [
    "ApproximateTokenCounter",
    "SubwordTokenCounter",
    "TextChunker",
    "build_token_counter",
]
