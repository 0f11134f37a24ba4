"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, ReferencesConfig, load_config


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "server": {"host": "0.0.0.0", "port": 8080},
        "model": {
            "name": "openai",
            "model": "gpt-4o-mini-2024-07-18",
            "api_key_env": "TEST_SOPHRON_KEY",
            "timeout_sec": 45,
        },
        "references": {
            "wikipedia_url": "https://en.wikipedia.org/api/rest_v1/page/summary/",
            "sep_url": "https://plato.stanford.edu/entries/",
            "timeout_sec": 10,
            "user_agent": "sophron-tests",
        },
        "session": {"debate_mode": True},
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_server(minimal_settings):
    config = load_config(minimal_settings)
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 8080


def test_load_config_model(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.model, ModelConfig)
    assert config.model.model == "gpt-4o-mini-2024-07-18"
    assert config.model.timeout_sec == 45
    assert config.model.base_url is None


def test_load_config_references(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.references, ReferencesConfig)
    assert config.references.sep_url.startswith("https://plato.stanford.edu")


def test_load_config_session(minimal_settings):
    config = load_config(minimal_settings)
    assert config.session.debate_mode is True


def test_load_config_session_defaults_when_missing(tmp_path: Path, minimal_settings):
    raw = yaml.safe_load(minimal_settings.read_text(encoding="utf-8"))
    del raw["session"]
    path = tmp_path / "no_session.yaml"
    path.write_text(yaml.dump(raw), encoding="utf-8")
    assert load_config(path).session.debate_mode is False


def test_load_config_has_api_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_SOPHRON_KEY", "sk-test-key")
    assert load_config(minimal_settings).has_api_key is True


def test_load_config_without_api_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_SOPHRON_KEY", raising=False)
    assert load_config(minimal_settings).has_api_key is False


def test_load_config_blank_api_key_counts_as_missing(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_SOPHRON_KEY", "   ")
    assert load_config(minimal_settings).has_api_key is False


def test_load_config_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_bundled_settings_load():
    config = load_config()
    assert config.model.api_key_env == "OPENAI_API_KEY"
    assert config.server.port == 3001
