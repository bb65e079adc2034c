"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (unset -> in-memory question store)
    database_url: str | None = None

    # Cache
    redis_url: str | None = None

    # Provider credentials: comma-separated list, rotated round-robin
    provider_api_keys: SecretStr | None = None
    gemini_api_key: SecretStr | None = None

    # Provider model and endpoint (OpenAI-compatible)
    provider_model: str = "gemini-2.5-flash"
    provider_base_url: str | None = "https://generativelanguage.googleapis.com/v1beta/openai/"

    # Sampling parameters
    provider_temperature: float = 0.7
    provider_top_p: float = 0.95
    provider_top_k: int | None = None
    provider_max_output_tokens: int = 8192

    # Timeouts (milliseconds)
    provider_timeout_ms: int = 60_000

    # Pipeline
    max_chunk_chars: int = 12_000
    inter_chunk_delay_ms: int = 1_000
    retry_backoff_ms: int = 2_000

    # Sessions
    session_grace_seconds: int = 60
    stream_heartbeat_seconds: float = 15.0

    # Question counts
    default_question_count: int = 10
    max_question_count: int = 50

    # Uploads
    max_upload_bytes: int = 40 * 1024 * 1024
    allowed_upload_types: tuple[str, ...] = ("application/pdf", "text/plain")

    # Rate limiting (requests per minute)
    uploads_per_min: int = 5

    # Inactive question retention (days)
    inactive_retention_days: int = 7

    def credential_secrets(self) -> list[str]:
        """Return configured provider credentials in pool order, de-duplicated."""
        secrets: list[str] = []
        if self.provider_api_keys:
            for raw in self.provider_api_keys.get_secret_value().split(","):
                key = raw.strip()
                if key and key not in secrets:
                    secrets.append(key)
        if self.gemini_api_key:
            key = self.gemini_api_key.get_secret_value().strip()
            if key and key not in secrets:
                secrets.append(key)
        return secrets


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
