"""JSON-file key-value store for the document registry.

The whole mapping is loaded once at construction and written back after
every mutation, through a sibling ``.tmp`` file that replaces the target,
so a crash mid-write leaves the previous snapshot intact.  Values must be
JSON-serialisable.  Suited to the registry's size (one small dict per
indexed document), not to high write rates.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from src.interfaces.store_provider import IKeyValueStore

logger = structlog.get_logger(logger_name=__name__)


class JsonFileKeyValueStore(IKeyValueStore):
    """Key-value store persisted as one JSON object on disk.

    Parameters
    ----------
    path:
        Location of the JSON file.  Missing parent directories are
        created on the first write.  An unreadable or malformed file is
        logged and treated as empty.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def evict(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._save()

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def clear(self) -> None:
        self._data.clear()
        self._save()

    def __len__(self) -> int:
        return len(self._data)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("store_file_load_failed", path=str(self._path), error=str(exc))
            return {}
        if not isinstance(raw, dict):
            logger.warning("store_file_not_an_object", path=str(self._path))
            return {}
        logger.debug("store_file_loaded", path=str(self._path), entries=len(raw))
        return raw

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        tmp.replace(self._path)
