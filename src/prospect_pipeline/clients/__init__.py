"""
External service clients for the Prospect Pipeline.
"""

from .openai_client import OpenAIClient
from .postgres_client import PostgresClient
from .serper_client import SerperClient

__all__ = [
    'OpenAIClient',
    'PostgresClient',
    'SerperClient',
]
