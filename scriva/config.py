from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    app_name: str = "Scriva"

    # Directory inside the book repository that holds all engine state
    context_dir: str = ".scriva"

    # GitHub contents API (persistence collaborator)
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    github_timeout_seconds: float = 30.0

    # Embedding provider (Voyage AI compatible /v1/embeddings endpoint)
    embedding_api_url: str = "https://api.voyageai.com/v1/embeddings"
    embedding_api_key: str = ""
    embedding_model: str = "voyage-3-lite"
    embedding_dimensions: int = 1024
    embedding_batch_size: int = 128
    embedding_timeout_seconds: float = 60.0

    # Embedding retry settings (429/503 only, exponential backoff)
    embedding_max_retries: int = 4
    embedding_base_delay: float = 1.0  # seconds

    # Chat model per tier - persisted book configs name tiers, not models
    model_haiku: str = "gemini-2.5-flash-lite"
    model_sonnet: str = "gemini-2.5-flash"
    model_opus: str = "gemini-2.5-pro"
    chat_max_output_tokens: int = 4096
    google_api_key: str = ""

    # Retrieval cache (chunks + embeddings per book)
    rag_cache_ttl_seconds: int = 3600
    rag_cache_max_books: int = 8

    # Max characters of a single free-text field inside a context projection
    context_field_chars: int = 300

    log_file: str = "scriva.log"

    model_config = SettingsConfigDict(env_prefix="SCRIVA_", env_file=".env", extra="ignore")

    def model_for_tier(self, tier: str) -> str:
        """Resolve a book-config model tier (haiku/sonnet/opus) to a model name."""
        return {
            "haiku": self.model_haiku,
            "sonnet": self.model_sonnet,
            "opus": self.model_opus,
        }.get(tier, self.model_sonnet)

@lru_cache
def get_settings():
    return Settings()


def context_path(*parts: str) -> str:
    """Build a repository path under the engine's context directory."""
    settings = get_settings()
    return "/".join([settings.context_dir.strip("/"), *parts])
