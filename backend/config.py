# backend/config.py
"""Application settings, built once at startup and passed to collaborators."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ANTHROPIC_DEFAULT = "claude-sonnet-4-20250514"
_OPENAI_DEFAULT = "gpt-4o-mini"


class Settings(BaseSettings):
    """Central settings object loaded from environment/.env."""

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    cors_origins: str = Field(default="*")

    # Storage
    database_url: str = Field(default="sqlite:///./requirements.db")
    database_timeout_seconds: float = Field(default=30.0)
    upload_dir: str = Field(default="uploads")

    # Generation provider
    llm_provider: str = Field(default="openai")
    openai_api_key: str = Field(default="")
    anthropic_api_key: str = Field(default="")
    generation_model: Optional[str] = Field(default=None)
    generation_max_tokens: int = Field(default=1024)
    generation_timeout_seconds: float = Field(default=30.0)
    mock_generation: bool = Field(default=True)

    # Audit sheet
    google_sheet_id: str = Field(default="")
    google_service_account: str = Field(default="")
    google_service_account_file: str = Field(default="server/service_account.json")
    audit_sheet_range: str = Field(default="Sheet1!A:C")
    audit_timeout_seconds: float = Field(default=30.0)
    mock_sheets: bool = Field(default=True)

    # Inbound rate limit: 100 requests per 15 minutes per client address
    rate_limit_max_requests: int = Field(default=100)
    rate_limit_window_seconds: int = Field(default=15 * 60)
    redis_url: str = Field(default="")

    model_config = SettingsConfigDict(extra="ignore")

    @property
    def provider(self) -> str:
        p = self.llm_provider.strip().lower()
        if p in ("anthropic", "claude"):
            return "anthropic"
        return "openai"

    @property
    def resolved_model(self) -> str:
        if self.generation_model:
            return self.generation_model
        return _ANTHROPIC_DEFAULT if self.provider == "anthropic" else _OPENAI_DEFAULT

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
