"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Vitals health-state server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the server exposes personal health data and has
    # no auth layer.
    vitals_host: str = "127.0.0.1"
    vitals_port: int = 8001
    vitals_log_level: str = "info"
    vitals_allow_insecure_bind: bool = False

    # Input documents (organized Bloodwork/Body Scan/Activity tree or flat layout)
    vitals_data_dir: str = "data"

    # Structured (AI) extractor
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    extraction_timeout_seconds: float = 60.0
    extraction_max_tokens: int = 8192

    # A primary biomarker extraction below this many markers is insufficient
    min_biomarker_count: int = 10

    # Extraction cache (manifest + per-domain payloads)
    cache_db_path: str = "~/.vitals/cache.db"

    # Fernet key for cache payloads; empty stores payloads as plain JSON
    encryption_key: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
