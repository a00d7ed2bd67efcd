"""
Durable background jobs: store, dispatcher tick, handler registry.

Claims are atomic in the store; execution is at-least-once, so every
registered handler is idempotent.
"""

from .dispatcher import JobDispatcher, TickResult, new_worker_id
from .handlers import DefaultHandlers, register_default_handlers
from .registry import HandlerRegistry, Registration
from .store import InMemoryJobStore, JobStore, PostgresJobStore

__all__ = [
    'JobDispatcher',
    'TickResult',
    'new_worker_id',
    'DefaultHandlers',
    'register_default_handlers',
    'HandlerRegistry',
    'Registration',
    'InMemoryJobStore',
    'JobStore',
    'PostgresJobStore',
]
