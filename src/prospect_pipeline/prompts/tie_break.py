"""
Profile tie-break prompts and response models.

When similarity search cannot separate the top profiles for an entity (or
found none), the LLM picks the best-fitting profile from a candidate list.
"""

from pydantic import BaseModel, Field


# =============================================================================
# Response Models for Structured Output
# =============================================================================


class ProfileChoice(BaseModel):
    """The LLM's pick among candidate profiles."""

    profile_id: str = Field(
        ...,
        description='The id of the chosen candidate, copied exactly from the candidate list.',
    )
    confidence: float = Field(
        ...,
        description='How well the entity fits the chosen profile, from 0.0 (poor) to 1.0 (perfect).',
    )
    reasoning: str = Field(
        ...,
        description='One sentence explaining the choice.',
    )


# =============================================================================
# Prompt Templates
# =============================================================================


TIE_BREAK_SYSTEM_PROMPT = """You assign companies and people to B2B target-segment profiles.

You are given ONE entity description and a short list of CANDIDATE PROFILES.
Pick the single profile the entity fits best.

Rules:
- Choose only from the candidate ids listed. Never invent an id.
- Weigh industry, company size and role/seniority over loose wording overlap.
- If the fit is weak for every candidate, still choose the closest one and give a low confidence."""


TIE_BREAK_USER_PROMPT_TEMPLATE = """<entity>
{description}
</entity>

<candidate_profiles>
{candidates}
</candidate_profiles>

Which candidate profile fits this entity best?"""


def build_tie_break_prompt(description: str, candidates: list[tuple[str, str]]) -> list[dict[str, str]]:
    """
    Build messages for a tie-break decision.

    Args:
        description: Entity descriptor text
        candidates: (profile_id, profile descriptor) pairs

    Returns:
        List of message dicts for OpenAI API
    """
    candidate_lines = '\n'.join(f'- id: {pid}\n  profile: {text}' for pid, text in candidates)
    return [
        {'role': 'system', 'content': TIE_BREAK_SYSTEM_PROMPT},
        {
            'role': 'user',
            'content': TIE_BREAK_USER_PROMPT_TEMPLATE.format(
                description=description,
                candidates=candidate_lines,
            ),
        },
    ]
