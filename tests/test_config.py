import pytest

from okxfi.core import config
from okxfi.core.config import Settings, require_settings
from okxfi.core.errors import ConfigurationError


def test_settings_reads_environment_variables(monkeypatch) -> None:
    monkeypatch.setenv("OKX_API_KEY", "demo")
    monkeypatch.setenv("OKX_PASSPHRASE", "legacy-pass")
    monkeypatch.setenv("AGENT_MAX_ITERATIONS", "4")
    monkeypatch.delenv("OKX_API_PASSPHRASE", raising=False)
    config.get_settings.cache_clear()

    settings = config.get_settings()

    assert settings.okx_api_key == "demo"
    assert settings.okx_passphrase == "legacy-pass"
    assert settings.agent_max_iterations == 4
    config.get_settings.cache_clear()


def test_openai_key_is_accepted_as_llm_key(monkeypatch) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    settings = Settings(_env_file=None)

    assert settings.openrouter_api_key == "sk-test"


def test_missing_required_names_every_absent_value() -> None:
    settings = Settings(
        _env_file=None,
        SOLANA_PRIVATE_KEY=None,
        RPC_URL="https://rpc.example",
        OPENROUTER_API_KEY=None,
    )

    assert settings.missing_required() == ["SOLANA_PRIVATE_KEY", "OPENROUTER_API_KEY"]
    with pytest.raises(ConfigurationError, match="SOLANA_PRIVATE_KEY, OPENROUTER_API_KEY"):
        require_settings(settings)


def test_require_settings_passes_when_configured() -> None:
    settings = Settings(
        _env_file=None,
        SOLANA_PRIVATE_KEY="key",
        RPC_URL="https://rpc.example",
        OPENROUTER_API_KEY="sk",
    )

    assert require_settings(settings) is settings


def test_credentials_and_cors_helpers() -> None:
    settings = Settings(
        _env_file=None,
        OKX_API_KEY="k",
        OKX_SECRET_KEY="s",
        OKX_API_PASSPHRASE=None,
        CORS_ORIGINS="http://localhost:3000, https://app.example ,",
    )

    assert settings.okx_credentials_complete is False
    assert settings.cors_origins == ["http://localhost:3000", "https://app.example"]
