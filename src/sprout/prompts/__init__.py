"""Agent prompt resolution, caching and versioning."""

from .cache import PromptCache, ResolvedPrompt
from .defaults import AGENT_NAMES, DEFAULT_PROMPTS, get_default_prompt
from .registry import DEFAULT_VERSION, OVERRIDE_VERSION, PromptRegistry

__all__ = [
    "AGENT_NAMES",
    "DEFAULT_PROMPTS",
    "DEFAULT_VERSION",
    "OVERRIDE_VERSION",
    "PromptCache",
    "PromptRegistry",
    "ResolvedPrompt",
    "get_default_prompt",
]
