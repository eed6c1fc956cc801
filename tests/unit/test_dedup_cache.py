"""Unit tests for the content-hash DocumentCache."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.providers.store.file_store import JsonFileKeyValueStore
from src.providers.store.memory_store import InMemoryKeyValueStore
from src.services.dedup_cache import DocumentCache
from tests.conftest import make_chunk, make_file

_HOUR = 3600.0


class _Clock:
    """Manually advanced clock, in seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> _Clock:
    return _Clock()


@pytest.fixture()
def cache(clock: _Clock) -> DocumentCache:
    return DocumentCache(InMemoryKeyValueStore(), retention_hours=168, clock=clock)


# ======================================================================
# Hashing
# ======================================================================


class TestHashing:
    def test_hash_ignores_surrounding_whitespace(self) -> None:
        assert DocumentCache.hash_content("  hello\n") == DocumentCache.hash_content("hello")

    def test_hash_is_sha256_hex(self) -> None:
        assert len(DocumentCache.hash_content("hello")) == 64

    def test_fingerprint_is_prefix(self) -> None:
        digest = DocumentCache.hash_content("hello")
        assert DocumentCache.fingerprint("hello") == digest[:16]


# ======================================================================
# Batch filtering
# ======================================================================


class TestFilterBatch:
    def test_new_files_pass_through_with_hash(self, cache: DocumentCache) -> None:
        result = cache.filter_batch([make_file("a.txt", "alpha"), make_file("b.txt", "beta")])
        assert [f.name for f in result.unique] == ["a.txt", "b.txt"]
        assert result.duplicates == []
        assert all(f.content_hash for f in result.unique)

    def test_repeat_inside_batch_keeps_first(self, cache: DocumentCache) -> None:
        result = cache.filter_batch([make_file("a.txt", "same text"), make_file("b.txt", "same text ")])
        assert [f.name for f in result.unique] == ["a.txt"]
        assert [f.name for f in result.duplicates] == ["b.txt"]

    def test_registered_file_is_duplicate(self, cache: DocumentCache) -> None:
        first = cache.filter_batch([make_file("a.txt", "alpha")]).unique[0]
        cache.register(first, [make_chunk("alpha")])

        result = cache.filter_batch([make_file("renamed.txt", "alpha")])
        assert result.unique == []
        assert [f.name for f in result.duplicates] == ["renamed.txt"]

    def test_unregistered_file_is_not_duplicate(self, cache: DocumentCache) -> None:
        # Filtering alone never registers; only indexed documents count.
        cache.filter_batch([make_file("a.txt", "alpha")])
        assert cache.is_duplicate("alpha") == (False, None)


# ======================================================================
# Retention
# ======================================================================


class TestRetention:
    def test_duplicate_within_window(self, cache: DocumentCache, clock: _Clock) -> None:
        cache.register(make_file("a.txt", "alpha"), [make_chunk("alpha")])
        clock.now += 167 * _HOUR
        duplicate, entry = cache.is_duplicate("alpha")
        assert duplicate is True
        assert entry is not None and entry.filename == "a.txt"

    def test_expired_entry_is_not_duplicate(self, cache: DocumentCache, clock: _Clock) -> None:
        cache.register(make_file("a.txt", "alpha"), [make_chunk("alpha")])
        clock.now += 169 * _HOUR
        assert cache.is_duplicate("alpha") == (False, None)
        assert cache.stats().total_documents == 0

    def test_expiry_clears_chunk_hashes(self, cache: DocumentCache, clock: _Clock) -> None:
        cache.register(make_file("a.txt", "alpha"), [make_chunk("chunk one")])
        clock.now += 1 * _HOUR
        cache.register(make_file("b.txt", "beta"), [make_chunk("chunk two")])
        assert cache.stats().total_chunk_hashes == 2

        clock.now += 168 * _HOUR - 0.5 * _HOUR
        assert cache.is_duplicate("alpha")[0] is False
        assert cache.stats().total_chunk_hashes == 0
        # The newer document is still registered; only chunk hashes were dropped.
        assert cache.is_duplicate("beta")[0] is True

    def test_cleanup_expired_counts_removed(self, cache: DocumentCache, clock: _Clock) -> None:
        cache.register(make_file("a.txt", "alpha"), [])
        cache.register(make_file("b.txt", "beta"), [])
        clock.now += 200 * _HOUR
        cache.register(make_file("c.txt", "gamma"), [])

        assert cache.cleanup_expired() == 2
        assert cache.stats().total_documents == 1


# ======================================================================
# Registry storage
# ======================================================================


class TestRegistryStorage:
    def test_chunk_hashes_never_evict_document_entries(self, clock: _Clock) -> None:
        cache = DocumentCache(InMemoryKeyValueStore(max_size=5), chunk_hash_limit=10, clock=clock)
        cache.register(make_file("a.txt", "alpha"), [make_chunk("alpha")])
        large = [make_chunk(f"paragraph {n}", f"c{n}") for n in range(200)]
        cache.register(make_file("b.txt", "beta"), large)

        assert cache.is_duplicate("alpha")[0] is True
        assert cache.is_duplicate("beta")[0] is True
        assert cache.stats().total_chunk_hashes == 10

    def test_entries_are_stored_as_plain_dicts(self, clock: _Clock) -> None:
        store = InMemoryKeyValueStore()
        cache = DocumentCache(store, clock=clock)
        entry = cache.register(make_file("a.txt", "alpha"), [])

        assert store.keys() == [entry.content_hash]
        assert store.get(entry.content_hash) == {
            "content_hash": entry.content_hash,
            "filename": "a.txt",
            "timestamp": clock.now,
            "chunk_count": 0,
            "token_count": 0,
        }

    def test_registry_file_is_shared_between_instances(self, clock: _Clock, tmp_path: Path) -> None:
        path = tmp_path / "registry.json"
        DocumentCache(JsonFileKeyValueStore(path), clock=clock).register(
            make_file("a.txt", "alpha"), [make_chunk("alpha")]
        )

        reopened = DocumentCache(JsonFileKeyValueStore(path), clock=clock)
        duplicate, entry = reopened.is_duplicate("alpha")
        assert duplicate is True
        assert entry.filename == "a.txt"
        assert [f.name for f in reopened.filter_batch([make_file("again.txt", "alpha")]).duplicates] == [
            "again.txt"
        ]

    def test_expired_entry_is_removed_from_file(self, clock: _Clock, tmp_path: Path) -> None:
        path = tmp_path / "registry.json"
        cache = DocumentCache(JsonFileKeyValueStore(path), retention_hours=1, clock=clock)
        cache.register(make_file("a.txt", "alpha"), [])
        clock.now += 2 * _HOUR

        assert cache.cleanup_expired() == 1
        assert len(JsonFileKeyValueStore(path)) == 0


# ======================================================================
# Chunk filtering
# ======================================================================


class TestChunkFiltering:
    def test_indexed_chunks_are_dropped(self, cache: DocumentCache) -> None:
        cache.register(make_file("a.txt", "alpha"), [make_chunk("shared paragraph")])
        result = cache.filter_duplicate_chunks(
            [make_chunk("shared paragraph", "c1"), make_chunk("new paragraph", "c2")]
        )
        assert [c.id for c in result.unique] == ["c2"]
        assert result.duplicate_count == 1

    def test_repeats_within_list_are_dropped(self, cache: DocumentCache) -> None:
        result = cache.filter_duplicate_chunks(
            [make_chunk("same", "c1"), make_chunk("same", "c2"), make_chunk("other", "c3")]
        )
        assert [c.id for c in result.unique] == ["c1", "c3"]
        assert result.duplicate_count == 1


# ======================================================================
# Administration
# ======================================================================


class TestAdministration:
    def test_stats(self, cache: DocumentCache, clock: _Clock) -> None:
        cache.register(make_file("a.txt", "alpha"), [make_chunk("one two three"), make_chunk("four")])
        clock.now += 10
        cache.register(make_file("b.txt", "beta"), [make_chunk("five six")])

        stats = cache.stats()
        assert stats.total_documents == 2
        assert stats.total_chunks == 3
        assert stats.total_tokens == 6
        assert stats.newest_entry - stats.oldest_entry == 10

    def test_clear(self, cache: DocumentCache) -> None:
        cache.register(make_file("a.txt", "alpha"), [make_chunk("x")])
        cache.clear()
        assert cache.stats().total_documents == 0
        assert cache.stats().total_chunk_hashes == 0

    def test_export_then_import(self, cache: DocumentCache, clock: _Clock) -> None:
        cache.register(make_file("a.txt", "alpha"), [])
        exported = cache.export_entries()

        restored = DocumentCache(InMemoryKeyValueStore(), clock=clock)
        assert restored.import_entries(exported) == 1
        assert restored.is_duplicate("alpha")[0] is True

    def test_import_skips_expired(self, clock: _Clock) -> None:
        stale = {"content_hash": "0" * 64, "filename": "old.txt", "timestamp": clock.now - 200 * _HOUR}
        restored = DocumentCache(InMemoryKeyValueStore(), clock=clock)
        assert restored.import_entries([stale]) == 0
