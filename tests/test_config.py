from __future__ import annotations

import pytest

from core.chunking import ChunkOptions
from core.config import load_settings


_ENV_NAMES = (
    "DATABASE_URL",
    "CHAT_BASE_URL",
    "INFERENCE_BASE_URL",
    "CHAT_API_KEY",
    "GOOGLE_GENERATIVE_AI_API_KEY",
    "CHAT_MODEL",
    "CHAT_TIMEOUT_S",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "CONTEXT_MAX_CHUNKS",
    "MAX_UPLOAD_BYTES",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()
        assert settings.database_url.startswith("postgresql://")
        assert settings.chat_base_url == "https://generativelanguage.googleapis.com/v1beta/openai"
        assert settings.chat_api_key is None
        assert settings.chat_model == "gemini-2.5-flash"
        assert settings.chunk_options() == ChunkOptions(chunk_size=1000, overlap=200)
        assert settings.context_max_chunks == 10
        assert settings.max_upload_bytes == 25 * 1024 * 1024

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CHAT_BASE_URL", "http://localhost:1234/v1/")
        monkeypatch.setenv("CHAT_MODEL", "local-model")
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("CHUNK_OVERLAP", "50")
        monkeypatch.setenv("CHAT_TIMEOUT_S", "30")

        settings = load_settings()
        assert settings.chat_base_url == "http://localhost:1234/v1"
        assert settings.chat_model == "local-model"
        assert settings.chunk_options() == ChunkOptions(chunk_size=500, overlap=50)
        assert settings.chat_timeout_s == 30.0

    def test_api_key_falls_back_to_google_variable(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")
        assert load_settings().chat_api_key == "g-key"
        monkeypatch.setenv("CHAT_API_KEY", "c-key")
        assert load_settings().chat_api_key == "c-key"

    def test_blank_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "  ")
        assert load_settings().chunk_size == 1000

    @pytest.mark.parametrize(
        "size,overlap",
        [("0", "0"), ("-5", "0"), ("100", "100"), ("100", "150"), ("100", "-1")],
    )
    def test_invalid_chunking_rejected(self, monkeypatch, size, overlap):
        monkeypatch.setenv("CHUNK_SIZE", size)
        monkeypatch.setenv("CHUNK_OVERLAP", overlap)
        with pytest.raises(ValueError):
            load_settings()

    def test_non_integer_rejected(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "big")
        with pytest.raises(ValueError, match="CHUNK_SIZE"):
            load_settings()

    def test_context_max_chunks_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("CONTEXT_MAX_CHUNKS", "0")
        with pytest.raises(ValueError):
            load_settings()
