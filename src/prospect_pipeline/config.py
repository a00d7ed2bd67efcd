"""
Configuration management for the Prospect Pipeline.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


def _bool_env(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Configuration settings loaded from environment."""

    # OpenAI
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    OPENAI_CHAT_MODEL: str = os.getenv('OPENAI_CHAT_MODEL', 'gpt-4.1-mini')
    OPENAI_EMBEDDING_MODEL: str = os.getenv('OPENAI_EMBEDDING_MODEL', 'text-embedding-3-small')
    OPENAI_EMBEDDING_DIMENSIONS: int = int(os.getenv('OPENAI_EMBEDDING_DIMENSIONS', '1536'))

    # Serper (places + people search)
    SERPER_API_KEY: str = os.getenv('SERPER_API_KEY', '')
    SERPER_BASE_URL: str = os.getenv('SERPER_BASE_URL', 'https://google.serper.dev')

    # Durable store
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')
    STORE_BACKEND: str = os.getenv('STORE_BACKEND', '') or ('postgres' if DATABASE_URL else 'memory')

    # Stages
    STAGE_MAX_CONCURRENCY: int = int(os.getenv('STAGE_MAX_CONCURRENCY', '3'))
    STAGE_SOFT_BUDGET_SECONDS: float = float(os.getenv('STAGE_SOFT_BUDGET_SECONDS', '90'))
    STAGE_MAX_ATTEMPTS: int = int(os.getenv('STAGE_MAX_ATTEMPTS', '3'))
    PERSONAS_TIMEOUT_SECONDS: float = float(os.getenv('PERSONAS_TIMEOUT_SECONDS', '120'))
    DISCOVERY_TIMEOUT_SECONDS: float = float(os.getenv('DISCOVERY_TIMEOUT_SECONDS', '240'))
    DECISION_MAKERS_TIMEOUT_SECONDS: float = float(
        os.getenv('DECISION_MAKERS_TIMEOUT_SECONDS', '180')
    )
    MARKET_INSIGHTS_TIMEOUT_SECONDS: float = float(
        os.getenv('MARKET_INSIGHTS_TIMEOUT_SECONDS', '300')
    )
    DISCOVERY_RESULTS_PER_PROFILE: int = int(os.getenv('DISCOVERY_RESULTS_PER_PROFILE', '5'))
    CONTACTS_PER_BUSINESS: int = int(os.getenv('CONTACTS_PER_BUSINESS', '5'))

    # Result cache
    CACHE_TTL_SECONDS: int = int(os.getenv('CACHE_TTL_SECONDS', '86400'))
    CACHE_MAX_ENTRIES: int = int(os.getenv('CACHE_MAX_ENTRIES', '500'))
    CACHE_RETENTION_SECONDS: int = int(os.getenv('CACHE_RETENTION_SECONDS', '86400'))
    CACHE_PURGE_INTERVAL_SECONDS: int = int(os.getenv('CACHE_PURGE_INTERVAL_SECONDS', '300'))

    # Matching
    MAPPING_MAX_ATTEMPTS: int = int(os.getenv('MAPPING_MAX_ATTEMPTS', '12'))
    MAPPING_RETRY_DELAY_SECONDS: float = float(os.getenv('MAPPING_RETRY_DELAY_SECONDS', '5'))
    MAPPING_LOCK_TIMEOUT_SECONDS: float = float(os.getenv('MAPPING_LOCK_TIMEOUT_SECONDS', '120'))
    MAPPING_RETRY_STRATEGY: str = os.getenv('MAPPING_RETRY_STRATEGY', 'job')
    MATCH_TIE_THRESHOLD: float = float(os.getenv('MATCH_TIE_THRESHOLD', '0.03'))

    # Dispatcher
    DISPATCHER_MAX_CLAIMS_PER_TICK: int = int(os.getenv('DISPATCHER_MAX_CLAIMS_PER_TICK', '5'))
    DISPATCHER_FAILURE_BACKOFF_SECONDS: int = int(
        os.getenv('DISPATCHER_FAILURE_BACKOFF_SECONDS', '30')
    )
    DISPATCHER_WORKER_PREFIX: str = os.getenv('DISPATCHER_WORKER_PREFIX', 'worker')
    # Running jobs untouched this long are treated as abandoned by a dead worker
    DISPATCHER_STALE_AFTER_SECONDS: int = int(os.getenv('DISPATCHER_STALE_AFTER_SECONDS', '1200'))

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_JSON: bool = _bool_env('LOG_JSON')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.OPENAI_API_KEY:
            missing.append('OPENAI_API_KEY')
        if not cls.SERPER_API_KEY:
            missing.append('SERPER_API_KEY')
        if cls.STORE_BACKEND == 'postgres' and not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        return missing


# Singleton config instance
config = Config()
