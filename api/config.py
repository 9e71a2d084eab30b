"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    debug: bool = False
    environment: str = "development"
    site_url: str = "https://tinymind.me"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
        "https://tinymind.me",
    ]

    # GitHub (content store)
    github_api_url: str = "https://api.github.com"
    # Server token for public read-only lookups; empty means unauthenticated
    github_token: str = ""
    content_repo: str = "tinymind-blog"
    request_timeout: float = 30.0

    # Retry policy for remote calls
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_jitter: float = 1.0

    # Content cache
    cache_max_entries: int = 1000
    cache_ttl: float = 300
    default_branch_ttl: float = 600
    bootstrap_ttl: float = 600

    # Uploads
    max_image_bytes: int = 10 * 1024 * 1024

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
