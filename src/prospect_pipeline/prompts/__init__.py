"""
LLM prompts and structured-output models for the Prospect Pipeline.
"""

from .market import MarketAnalysis, build_market_prompt
from .profiles import GeneratedProfile, GeneratedProfileSet, build_profile_prompt
from .tie_break import ProfileChoice, build_tie_break_prompt

__all__ = [
    'MarketAnalysis',
    'build_market_prompt',
    'GeneratedProfile',
    'GeneratedProfileSet',
    'build_profile_prompt',
    'ProfileChoice',
    'build_tie_break_prompt',
]
