"""
Tests for Settings and load_settings.
"""

import pytest

from shopfloor import config
from shopfloor.config import DEFAULT_OPENAI_MODEL, Settings, load_settings
from shopfloor.errors import UpstreamConfigMissing

ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "LLM_TIMEOUT_SECONDS",
    "SHOP_REST_URL",
    "SHOP_REST_ANON_KEY",
    "SHOP_REST_TIMEOUT_SECONDS",
    "BACKEND_CORS_ORIGINS",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda *a, **k: False)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = load_settings()
    assert settings.openai_api_key is None
    assert settings.openai_model == DEFAULT_OPENAI_MODEL
    assert settings.llm_timeout_seconds is None
    assert settings.uses_rest_backend is False
    assert settings.cors_origins == ["*"]
    assert settings.rest_timeout_seconds == 10.0


def test_from_environment(clean_env):
    clean_env.setenv("OPENAI_API_KEY", "sk-live")
    clean_env.setenv("OPENAI_MODEL", "gpt-4o")
    clean_env.setenv("LLM_TIMEOUT_SECONDS", "45")
    clean_env.setenv("SHOP_REST_URL", "https://shop.example")
    clean_env.setenv("BACKEND_CORS_ORIGINS", "http://localhost:5173, https://app.example")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = load_settings()
    assert settings.require_openai_api_key() == "sk-live"
    assert settings.openai_model == "gpt-4o"
    assert settings.llm_timeout_seconds == 45.0
    assert settings.uses_rest_backend is True
    assert settings.cors_origins == ["http://localhost:5173", "https://app.example"]
    assert settings.log_level == "DEBUG"


def test_blank_key_is_missing():
    with pytest.raises(UpstreamConfigMissing) as excinfo:
        Settings(openai_api_key="   ").require_openai_api_key()
    assert excinfo.value.status_code == 500
    assert excinfo.value.to_response() == {
        "error": "OpenAI API key is not configured. Please set OPENAI_API_KEY."
    }
