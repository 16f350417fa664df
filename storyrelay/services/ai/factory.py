"""Factory for creating AI provider instances."""

from typing import Optional

from storyrelay.config import settings
from storyrelay.core.logging import get_logger
from storyrelay.services.ai.base import AIProvider
from storyrelay.services.ai.gemini import GeminiProvider
from storyrelay.services.ai.mock import MockProvider

logger = get_logger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


def get_ai_provider(
    provider_name: Optional[str] = None,
    model: Optional[str] = None,
) -> AIProvider:
    """Get an AI provider instance.

    Args:
        provider_name: Optional provider name. If not specified,
                      uses AI_PROVIDER from config.
        model: Optional model override (e.g. the opening-scene model).

    Returns:
        An AIProvider instance.
    """
    name = provider_name or settings.AI_PROVIDER

    if name == "mock":
        logger.debug("Using MockProvider")
        return MockProvider()

    if name == "gemini":
        if settings.AI_API_KEY:
            model_name = model or settings.AI_MODEL or DEFAULT_GEMINI_MODEL
            logger.debug("Using GeminiProvider with model: %s", model_name)
            return GeminiProvider(
                api_key=settings.AI_API_KEY,
                model=model_name,
                request_timeout=settings.GENERATION_TIMEOUT_SECONDS,
            )
        else:
            logger.warning("AI_API_KEY not set, falling back to MockProvider")
            return MockProvider()

    # Fallback to MockProvider for unknown providers
    logger.warning("Unknown provider '%s', falling back to MockProvider", name)
    return MockProvider()


def get_opening_provider() -> Optional[AIProvider]:
    """Provider for turn 0 when AI_OPENING_MODEL is configured, else None."""
    if not settings.AI_OPENING_MODEL:
        return None
    return get_ai_provider(model=settings.AI_OPENING_MODEL)
