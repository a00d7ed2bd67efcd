"""
Handler registry: job type -> async handler(payload).
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from prospect_pipeline.errors import UnknownJobTypeError

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class Registration:
    handler: Handler
    max_attempts: int | None = None


class HandlerRegistry:
    """
    Maps job types to handlers.

    A registration may carry its own max_attempts; otherwise the job row's
    max_attempts decides when a failing job is dead.
    """

    def __init__(self):
        self._handlers: dict[str, Registration] = {}

    def register(self, job_type: str, handler: Handler, max_attempts: int | None = None) -> None:
        self._handlers[job_type] = Registration(handler=handler, max_attempts=max_attempts)

    def get(self, job_type: str) -> Registration | None:
        return self._handlers.get(job_type)

    def require(self, job_type: str) -> Registration:
        registration = self._handlers.get(job_type)
        if registration is None:
            raise UnknownJobTypeError(
                f"No handler registered for job type '{job_type}'",
                context={'job_type': job_type, 'known': self.types},
            )
        return registration

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers

    @property
    def types(self) -> list[str]:
        return sorted(self._handlers)
