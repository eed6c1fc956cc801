"""Abstract base class for document text extractors."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: DocumentTextExtractor (txt, md, pdf, docx)
# Located in: src/providers/extraction/
class ITextExtractor(ABC):
    """Contract for turning uploaded bytes into plain text."""

    @abstractmethod
    async def extract(self, data: bytes, filename: str, mime_type: str) -> str:
        """Return the plain text contained in *data*.

        Implementations may try several strategies before giving up.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the format is unsupported or the file is corrupt or empty.
            The message names the format.
        """

    @abstractmethod
    def supported_extensions(self) -> frozenset[str]:
        """Return the lower-case extensions (with dot) this extractor handles."""
