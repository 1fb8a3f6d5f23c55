"""Tests for settings parsing."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from filedeck.config import Settings


def test_relative_paths_resolved_against_backend():
    settings = Settings(_env_file=None, root_dir="./data/storage")
    assert Path(settings.root_dir).is_absolute()
    assert Path(settings.root_dir).parts[-2:] == ("data", "storage")


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.cache_ttl_seconds == 60
    assert settings.max_path_depth == 32
    assert settings.search_max_results == 1000
    assert settings.feature_toggles["request_logging"] is True
    assert settings.feature_toggles["csp"] is False
    assert set(settings.category_toggles) == {
        "request", "file", "security", "performance", "system", "auth",
    }


def test_cors_origins_from_comma_list():
    settings = Settings(_env_file=None, cors_origins="http://a, http://b")
    assert settings.cors_origins == ["http://a", "http://b"]


def test_event_log_level_validated():
    assert Settings(_env_file=None, event_log_level="WARN").event_log_level == "warn"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, event_log_level="verbose")


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("FILEDECK_CACHE_TTL_SECONDS", "5")
    assert Settings(_env_file=None).cache_ttl_seconds == 5
