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
    """Hearth configuration. All values come from ``HEARTH_*`` environment variables."""

    # Storage
    database_path: Path = Field(default=Path("data/hearth.db"))

    # Models
    models_dir: Path = Field(default=Path("data/models"))
    default_model_id: str = Field(default="llama-3.2-1b")

    # Memory
    embedding_dimension: int = Field(default=384, gt=0)
    relevance_threshold: float = Field(default=0.3)
    memory_top_k: int = Field(default=3, ge=1)

    # Conversation
    history_window: int = Field(default=6, ge=0)
    default_title: str = Field(default="New Chat")
    system_prompt: str = Field(
        default=(
            "You are a helpful AI assistant running locally on the user's device. "
            "Be concise and helpful."
        )
    )

    # Inference server (llama.cpp server, Ollama, ...)
    inference_base_url: str = Field(default="http://127.0.0.1:8080/v1")
    inference_timeout: float = Field(default=120.0)
    temperature: float = Field(default=0.7)
    top_p: float = Field(default=0.9)
    max_tokens: int = Field(default=512)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="HEARTH_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
    )

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


settings = Settings()
