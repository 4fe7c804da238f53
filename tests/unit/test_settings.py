"""Unit test for settings configuration."""

import json

import pytest
from pydantic import ValidationError

from agent_memory.config.settings import DB_PATH_ENV, Settings, load_settings


def test_default_settings():
    """Test that default settings match the documented thresholds."""
    settings = Settings()
    assert settings.search.min_confidence == 0.3
    assert settings.search.min_similarity == 0.3
    assert settings.search.limit == 10
    assert settings.consolidation.similarity_threshold == 0.92
    assert settings.consolidation.min_confidence_to_keep == 0.2
    assert settings.patterns.success_threshold == 0.8
    assert settings.patterns.cleanup_min_success_rate == 0.3
    assert settings.patterns.cleanup_min_uses == 5


def test_context_defaults():
    """Test context assembly defaults."""
    settings = Settings()
    assert settings.context.max_tokens == 2000
    assert settings.context.min_confidence == 0.4
    assert settings.context.max_per_type == 4
    assert settings.context.max_per_subject == 2
    assert settings.context.max_total == 20
    assert settings.context.conversation_share == 0.3


def test_paths_configuration():
    """Test that default paths are properly set."""
    settings = Settings()
    assert settings.paths.db_path == "data/memory/memory.db"


def test_load_settings_without_file(monkeypatch):
    monkeypatch.delenv(DB_PATH_ENV, raising=False)
    assert load_settings() == Settings()


def test_load_settings_partial_file(tmp_path, monkeypatch):
    monkeypatch.delenv(DB_PATH_ENV, raising=False)
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"context": {"max_tokens": 800}, "log_level": "DEBUG"}))

    settings = load_settings(path)

    assert settings.context.max_tokens == 800
    assert settings.context.max_per_type == 4
    assert settings.log_level == "DEBUG"


def test_env_overrides_db_path(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"paths": {"db_path": "from_file.db"}}))
    monkeypatch.setenv(DB_PATH_ENV, "/tmp/from_env.db")

    assert load_settings(path).paths.db_path == "/tmp/from_env.db"


def test_invalid_threshold_rejected(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"search": {"min_similarity": 1.5}}))

    with pytest.raises(ValidationError):
        load_settings(path)
