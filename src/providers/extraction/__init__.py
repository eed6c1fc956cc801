"""Text extraction provider implementations."""

from src.providers.extraction.document_extractor import DocumentTextExtractor

__all__ = ["DocumentTextExtractor"]
