"""Input checks applied before any processing starts."""

from __future__ import annotations

from pathlib import PurePath

from src.utils.errors import ValidationError

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (".txt", ".pdf", ".docx", ".md")


class InputValidator:
    """Rejects bad queries and uploads with :class:`ValidationError`."""

    def __init__(
        self,
        max_query_length: int = 1000,
        max_file_size: int = 10 * 1024 * 1024,
        allowed_extensions: list[str] | tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS,
    ) -> None:
        self._max_query_length = max_query_length
        self._max_file_size = max_file_size
        self._allowed = tuple(ext.lower() for ext in allowed_extensions)

    @property
    def allowed_extensions(self) -> tuple[str, ...]:
        return self._allowed

    def validate_query(self, query: str) -> str:
        """Return the trimmed query, or raise if it is empty or too long."""
        cleaned = (query or "").strip()
        if not cleaned:
            raise ValidationError(message="Query must not be empty.")
        if len(cleaned) > self._max_query_length:
            raise ValidationError(
                message=f"Query is too long ({len(cleaned)} characters, maximum {self._max_query_length})."
            )
        return cleaned

    def validate_file(self, name: str, size: int) -> None:
        extension = PurePath(name).suffix.lower()
        if extension not in self._allowed:
            raise ValidationError(
                message=f"Unsupported file type '{extension or name}'. "
                f"Supported: {', '.join(self._allowed)}."
            )
        if size <= 0:
            raise ValidationError(message=f"File '{name}' is empty.")
        if size > self._max_file_size:
            raise ValidationError(
                message=f"File '{name}' is {size} bytes; the limit is {self._max_file_size} bytes."
            )
