"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Concierge configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    concierge_model: str = Field(default="claude-sonnet-4-5-20250929")
    max_tokens: int = Field(default=1024)
    temperature: float = Field(default=0.4)
    request_timeout_s: float = Field(default=60.0)

    # Database
    database_path: Path = Field(default=Path("data/concierge.db"))

    # Turso (hosted libSQL); when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Conversation
    history_window: int = Field(default=12)
    kb_limit: int = Field(default=6)

    # Marketplace tools
    vendor_search_limit: int = Field(default=10)
    bundle_size: int = Field(default=3)

    # Trust policy
    handoff_threshold: int = Field(default=45)

    # Market pulse
    market_pulse_cohort: str = Field(default="general")
    market_pulse_limit: int = Field(default=5)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8080)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def model_configured(self) -> bool:
        """True when a chat model credential is available."""
        return bool(self.anthropic_api_key.strip())


settings = Settings()
