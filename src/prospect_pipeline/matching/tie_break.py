"""
Generative tie-break (matching tier 2).

Asks the LLM to pick the best profile among candidates when similarity
search could not decide.
"""

from ..clients.openai_client import OpenAIClient
from ..clients.providers import TieBreakChoice
from ..logging import get_logger
from ..models import SegmentProfile
from ..prompts import ProfileChoice, build_tie_break_prompt

logger = get_logger(__name__)


class OpenAIProfileChooser:
    """ProfileChooser backed by OpenAI structured output."""

    def __init__(self, openai_client: OpenAIClient):
        self.openai = openai_client

    async def choose_best(
        self, candidates: list[SegmentProfile], description: str
    ) -> TieBreakChoice | None:
        """
        Pick one candidate for the described entity.

        Returns None when there are no candidates. The returned id is not
        validated here; the matching engine rejects ids outside the set.
        """
        if not candidates:
            return None

        messages = build_tie_break_prompt(
            description=description,
            candidates=[(p.id, p.descriptor()) for p in candidates],
        )
        choice = await self.openai.chat_completion_structured(
            messages=messages,
            response_model=ProfileChoice,
        )
        logger.debug(
            'tie_break.chosen',
            profile_id=choice.profile_id,
            confidence=choice.confidence,
            candidates=len(candidates),
        )
        return TieBreakChoice(
            profile_id=choice.profile_id.strip(),
            confidence=choice.confidence,
            reasoning=choice.reasoning,
        )
