"""Tests for environment-driven configuration."""

import pytest

from arena.config import DEFAULT_MODEL, ArenaConfig

ENV_VARS = (
    "GEMINI_API_KEY",
    "GEMINI_API_KEY_PATH",
    "ARENA_MODEL",
    "ARENA_CONNECT_TIMEOUT",
    "ARENA_WS_HOST",
    "ARENA_WS_PORT",
    "ARENA_MAX_MESSAGE_SIZE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = ArenaConfig.from_env()

    assert config.api_key is None
    assert config.model == DEFAULT_MODEL
    assert config.connect_timeout == 15.0
    assert config.ws_host == "localhost"
    assert config.ws_port == 8765


def test_overrides(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "  secret \n")
    monkeypatch.setenv("ARENA_MODEL", "gemini-live-test")
    monkeypatch.setenv("ARENA_CONNECT_TIMEOUT", "2.5")
    monkeypatch.setenv("ARENA_WS_PORT", "9000")

    config = ArenaConfig.from_env()

    assert config.api_key == "secret"
    assert config.model == "gemini-live-test"
    assert config.connect_timeout == 2.5
    assert config.ws_port == 9000


def test_api_key_from_plain_file(monkeypatch, tmp_path):
    key_file = tmp_path / "key.txt"
    key_file.write_text("file-secret\n", encoding="utf-8")
    monkeypatch.setenv("GEMINI_API_KEY_PATH", str(key_file))

    assert ArenaConfig.from_env().api_key == "file-secret"


def test_empty_key_file_means_no_key(monkeypatch, tmp_path):
    key_file = tmp_path / "key.txt"
    key_file.write_text("  \n", encoding="utf-8")
    monkeypatch.setenv("GEMINI_API_KEY_PATH", str(key_file))

    assert ArenaConfig.from_env().api_key is None


def test_blank_env_key_falls_back_to_file(monkeypatch, tmp_path):
    key_file = tmp_path / "key.txt"
    key_file.write_text("file-secret", encoding="utf-8")
    monkeypatch.setenv("GEMINI_API_KEY", "   ")
    monkeypatch.setenv("GEMINI_API_KEY_PATH", str(key_file))

    assert ArenaConfig.from_env().api_key == "file-secret"


def test_direct_key_wins_over_file(monkeypatch, tmp_path):
    key_file = tmp_path / "key.txt"
    key_file.write_text("file-secret", encoding="utf-8")
    monkeypatch.setenv("GEMINI_API_KEY_PATH", str(key_file))
    monkeypatch.setenv("GEMINI_API_KEY", "direct-secret")

    assert ArenaConfig.from_env().api_key == "direct-secret"


def test_missing_key_file_means_no_key(monkeypatch, tmp_path):
    monkeypatch.setenv("GEMINI_API_KEY_PATH", str(tmp_path / "missing.txt"))

    assert ArenaConfig.from_env().api_key is None
