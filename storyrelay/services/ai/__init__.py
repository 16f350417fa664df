"""AI provider module."""

from storyrelay.services.ai.base import AIProvider
from storyrelay.services.ai.factory import get_ai_provider, get_opening_provider
from storyrelay.services.ai.gemini import GeminiProvider
from storyrelay.services.ai.mock import MockProvider

__all__ = [
    "AIProvider",
    "GeminiProvider",
    "MockProvider",
    "get_ai_provider",
    "get_opening_provider",
]
