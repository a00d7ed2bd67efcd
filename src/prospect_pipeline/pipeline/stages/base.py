"""
Common shape of a pipeline stage.
"""

from typing import Any

from ...models import SearchContext


class Stage:
    """
    One phase of a Run.

    Subclasses implement run(); stages with has_fallback = True also implement
    fallback(), which must produce usable output from the search context alone.
    Both must be safe to call again for the same run after a partial attempt.
    """

    name: str = ''
    has_fallback: bool = False

    async def run(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        raise NotImplementedError

    async def fallback(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        raise NotImplementedError(f"Stage {self.name} has no fallback")
