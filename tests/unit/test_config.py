"""Unit tests for Settings and the YAML configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config.loader import load_config, load_settings
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test from an empty directory with no citebase variables set."""
    monkeypatch.chdir(tmp_path)
    for name in ("CHUNK_SIZE", "RETRIEVAL_TOP_K", "OPENAI_API_KEY", "COHERE_API_KEY", "MMR_LAMBDA"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestSettingsDefaults:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.chunk_size == 300
        assert settings.chunk_overlap == 30
        assert settings.retrieval_top_k == 3
        assert settings.retrieval_reranked_k == 1
        assert settings.max_concurrent_jobs == 2
        assert settings.cache_retention_hours == 168
        assert settings.allowed_extensions == [".txt", ".pdf", ".docx", ".md"]

    def test_capability_flags(self) -> None:
        assert Settings().has_generation() is False
        assert Settings(openai_api_key="sk", cohere_api_key="co").has_reranker() is True


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings.chunk_size == 300

    def test_grouped_yaml_is_flattened(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "chunking:\n  chunk_size: 200\n  chunk_overlap: 20\n"
            "retrieval:\n  top_k: 5\n  mmr_lambda: 0.5\n"
            "jobs:\n  max_concurrent_jobs: 4\n  retention_hours: 12\n"
            "index:\n  collection: custom\n",
        )
        settings = load_settings(path)
        assert settings.chunk_size == 200
        assert settings.chunk_overlap == 20
        assert settings.retrieval_top_k == 5
        assert settings.mmr_lambda == 0.5
        assert settings.max_concurrent_jobs == 4
        assert settings.job_retention_hours == 12
        assert settings.chromadb_collection == "custom"

    def test_environment_beats_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "chunking:\n  chunk_size: 200\n")
        monkeypatch.setenv("CHUNK_SIZE", "512")
        assert load_settings(path).chunk_size == 512

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "chunking:\n  nonsense: 1\nmystery: true\n")
        assert load_settings(path).chunk_size == 300

    def test_invalid_value_raises_configuration_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "chunking:\n  chunk_size: lots\n")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_non_mapping_yaml_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_settings(path)


class TestLoadConfig:
    def test_grouped_view_reflects_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "retrieval:\n  top_k: 5\n  extra: kept\n")
        monkeypatch.setenv("RETRIEVAL_TOP_K", "7")
        config = load_config(path)
        assert config["retrieval"]["top_k"] == 7
        assert config["retrieval"]["extra"] == "kept"
        assert config["chunking"]["chunk_size"] == 300
