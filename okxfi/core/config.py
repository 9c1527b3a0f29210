from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from okxfi.core.errors import ConfigurationError

OKX_DEFAULT_BASE_URL = "https://web3.okx.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    okx_api_key: Optional[str] = Field(default=None, alias="OKX_API_KEY")
    okx_secret_key: Optional[str] = Field(default=None, alias="OKX_SECRET_KEY")
    okx_passphrase: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OKX_API_PASSPHRASE", "OKX_PASSPHRASE"),
    )
    okx_project_id: Optional[str] = Field(default=None, alias="OKX_PROJECT_ID")
    okx_base_url: str = Field(default=OKX_DEFAULT_BASE_URL, alias="OKX_BASE_URL")
    okx_request_timeout: float = Field(default=15.0, alias="OKX_REQUEST_TIMEOUT", gt=0)
    wallet_address: Optional[str] = Field(default=None, alias="WALLET_ADDRESS")
    solana_private_key: Optional[str] = Field(default=None, alias="SOLANA_PRIVATE_KEY")
    rpc_url: Optional[str] = Field(default=None, alias="RPC_URL")
    openrouter_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENROUTER_API_KEY", "OPENAI_API_KEY"),
    )
    llm_model_id: str = Field(default="openai/gpt-4o-mini", alias="LLM_MODEL")
    agent_max_iterations: int = Field(default=8, alias="AGENT_MAX_ITERATIONS", ge=1)
    session_max_sessions: int = Field(default=500, alias="SESSION_MAX_SESSIONS", ge=1)
    session_ttl_seconds: float = Field(default=86400.0, alias="SESSION_TTL_SECONDS", gt=0)
    session_max_messages: int = Field(default=200, alias="SESSION_MAX_MESSAGES", ge=2)
    default_chat_mode: Optional[str] = Field(default=None, alias="DEFAULT_CHAT_MODE")
    cors_origins_raw: str = Field(default="*", alias="CORS_ORIGINS")

    @property
    def cors_origins(self) -> list[str]:
        origins = [item.strip() for item in self.cors_origins_raw.split(",") if item.strip()]
        return origins or ["*"]

    @property
    def okx_credentials_complete(self) -> bool:
        return bool(self.okx_api_key and self.okx_secret_key and self.okx_passphrase)

    def missing_required(self) -> list[str]:
        """Names of environment values the service cannot start without."""
        missing: list[str] = []
        if not self.solana_private_key:
            missing.append("SOLANA_PRIVATE_KEY")
        if not self.rpc_url:
            missing.append("RPC_URL")
        if not self.openrouter_api_key:
            missing.append("OPENROUTER_API_KEY")
        return missing


def require_settings(settings: Settings) -> Settings:
    missing = settings.missing_required()
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
