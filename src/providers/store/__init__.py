"""Store implementations for the dedup cache and job registry."""

from src.providers.store.file_store import JsonFileKeyValueStore
from src.providers.store.memory_store import InMemoryJobStore, InMemoryKeyValueStore

__all__ = ["InMemoryJobStore", "InMemoryKeyValueStore", "JsonFileKeyValueStore"]
