"""Tests for the configuration loader."""

import pytest

from chat_proxy.config import DEFAULT_ALLOWED_ORIGINS, FALLBACK_MODEL, load_config


def test_defaults_from_empty_environment() -> None:
    """An empty environment yields the documented defaults."""
    config = load_config({})

    assert config.provider == "groq"
    assert config.port == 3000
    assert config.allowed_origins == DEFAULT_ALLOWED_ORIGINS
    assert config.rate_limit.max_requests == 60
    assert config.rate_limit.window_seconds == 60.0
    assert config.upstream_timeout == 30.0
    assert config.max_body_bytes == 1024 * 1024
    assert config.groq.default_model is None
    assert config.log_file is None


def test_values_from_environment() -> None:
    config = load_config(
        {
            "PROVIDER": "openai",
            "PORT": "8080",
            "GROQ_MODEL": "llama-3.1-8b-instant",
            "ALLOWED_ORIGINS": " https://a.example ,https://b.example,, ",
            "RATE_LIMIT_MAX": "10",
            "UPSTREAM_TIMEOUT": "5",
        }
    )

    assert config.provider == "openai"
    assert config.port == 8080
    assert config.groq.default_model == "llama-3.1-8b-instant"
    assert config.allowed_origins == ["https://a.example", "https://b.example"]
    assert config.rate_limit.max_requests == 10
    assert config.upstream_timeout == 5.0


def test_invalid_number_raises() -> None:
    with pytest.raises(ValueError, match="PORT"):
        load_config({"PORT": "eighty"})


def test_default_origins_not_shared() -> None:
    config = load_config({})
    config.allowed_origins.append("https://mutated.example")
    assert "https://mutated.example" not in DEFAULT_ALLOWED_ORIGINS


def test_provider_api_key_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """ProviderConfig.api_key resolves from the environment variable."""
    monkeypatch.setenv("GROQ_API_KEY", "gsk-12345")
    config = load_config({})
    assert config.groq.api_key == "gsk-12345"


def test_provider_api_key_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    """ProviderConfig.api_key returns None when the env var is unset or empty."""
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    config = load_config({})
    assert config.groq.api_key is None

    monkeypatch.setenv("GROQ_API_KEY", "")
    assert config.groq.api_key is None


def test_fallback_model_constant() -> None:
    assert FALLBACK_MODEL == "llama-3.3-70b-versatile"
