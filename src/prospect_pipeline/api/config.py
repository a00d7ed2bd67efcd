"""Configuration for the pipeline HTTP service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Auth
    WORKER_API_KEY: str

    # Seconds to wait for background runs on shutdown
    SHUTDOWN_DRAIN_SECONDS: float = 30.0

    # uvicorn bind address for the `prospect-pipeline-api` command
    HOST: str = "0.0.0.0"
    PORT: int = 8000


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
