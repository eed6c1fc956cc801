"""Text extraction for plain text, Markdown, PDF and DOCX uploads.

Format dispatch is by file extension:

    .txt / .md  → UTF-8 decode, latin-1 when UTF-8 yields replacement chars
    .pdf        → PyMuPDF page text, then PyMuPDF text blocks
    .docx       → python-docx paragraph text

PDF and DOCX parsing is synchronous library code, so it runs through
``asyncio.to_thread`` to keep the event loop free while a large file is
parsed.  Every failure is reported as :class:`ExtractionError` naming the
format; the caller decides whether that fails one file or the whole batch.
"""

from __future__ import annotations

import asyncio
import io
import re
from pathlib import PurePath

import docx
import fitz  # PyMuPDF
import structlog

from src.interfaces.text_extractor import ITextExtractor
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_SUPPORTED = frozenset({".txt", ".md", ".pdf", ".docx"})


def _tidy(text: str) -> str:
    """Unify line endings and squeeze the blank runs that PDF/DOCX output carries."""
    text = text.replace("\f", "\n").replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    return text.strip()


class DocumentTextExtractor(ITextExtractor):
    """Extracts plain text from the upload formats citebase accepts."""

    async def extract(self, data: bytes, filename: str, mime_type: str) -> str:
        extension = PurePath(filename).suffix.lower()
        if extension not in _SUPPORTED:
            raise ExtractionError(
                message=f"Unsupported file type '{extension or mime_type}' for {filename}",
                provider_name="extractor",
            )

        if extension in (".txt", ".md"):
            text = self._decode_text(data)
        elif extension == ".pdf":
            text = await asyncio.to_thread(self._extract_pdf, data, filename)
        else:
            text = await asyncio.to_thread(self._extract_docx, data, filename)

        if not text.strip():
            raise ExtractionError(
                message=f"No text content found in {extension} file {filename}",
                provider_name="extractor",
            )

        logger.info("text_extracted", filename=filename, format=extension, characters=len(text))
        return text

    def supported_extensions(self) -> frozenset[str]:
        return _SUPPORTED

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_text(data: bytes) -> str:
        text = data.decode("utf-8", errors="replace")
        if "\ufffd" in text:
            text = data.decode("latin-1")
        return text.strip()

    @staticmethod
    def _extract_pdf(data: bytes, filename: str) -> str:
        try:
            document = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not open pdf file {filename}: {exc}",
                provider_name="pymupdf",
            ) from exc

        try:
            pages = [page.get_text("text") for page in document]
            text = _tidy("\n\n".join(pages))
            if not text:
                # Some generators only expose text through layout blocks.
                blocks = [
                    block[4]
                    for page in document
                    for block in page.get_text("blocks")
                    if len(block) > 4 and isinstance(block[4], str)
                ]
                text = _tidy("\n\n".join(blocks))
                if text:
                    logger.debug("pdf_extracted_from_blocks", filename=filename)
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to read pdf file {filename}: {exc}",
                provider_name="pymupdf",
            ) from exc
        finally:
            document.close()
        return text

    @staticmethod
    def _extract_docx(data: bytes, filename: str) -> str:
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not open docx file {filename}: {exc}",
                provider_name="python-docx",
            ) from exc
        paragraphs = [p.text for p in document.paragraphs if p.text.strip()]
        return _tidy("\n\n".join(paragraphs).replace("\t", " "))
