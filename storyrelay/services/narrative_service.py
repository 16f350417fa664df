"""Narrative Generator gateway

Every LLM call goes through here, awaited through the provider's
``generate_async``. A call is attempted up to
``max_attempts`` times; each attempt is bounded by ``timeout_seconds`` and
failed attempts wait ``backoff_seconds * attempt`` before the next one.
Both provider failures and malformed output count as failed attempts.
After the last attempt a GenerationFailedError reaches the caller.
"""

import asyncio
from typing import Callable, Optional, TypeVar

from storyrelay.core.errors import (
    GenerationError,
    GenerationFailedError,
    MalformedOutputError,
)
from storyrelay.core.logging import get_logger
from storyrelay.services.ai.base import AIProvider
from storyrelay.services.narrative_parser import ResponseParser
from storyrelay.services.narrative_prompts import PromptBuilder
from storyrelay.services.narrative_types import (
    BuiltPrompt,
    NarrativeConfig,
    OpeningPayload,
    OpeningPromptContext,
    TurnPayload,
    TurnPromptContext,
)

logger = get_logger(__name__)

T = TypeVar("T")


class NarrativeService:
    """Service for generating turn payloads using AI providers."""

    def __init__(
        self,
        ai_provider: AIProvider,
        config: NarrativeConfig | None = None,
        opening_provider: Optional[AIProvider] = None,
    ) -> None:
        """Initialize the narrative service.

        Args:
            ai_provider: The AI provider used for every turn.
            config: Optional retry / timeout configuration.
            opening_provider: Optional separate provider for turn 0.
        """
        self.ai = ai_provider
        self.opening_ai = opening_provider or ai_provider
        self._config = config or NarrativeConfig()
        self._prompt_builder = PromptBuilder(self._config)
        self._parser = ResponseParser()

    @property
    def config(self) -> NarrativeConfig:
        return self._config

    async def generate_opening(self, ctx: OpeningPromptContext) -> OpeningPayload:
        """Opening scene, goal and prerequisites for a new session."""
        built = self._prompt_builder.build_opening(ctx)
        return await self._generate(self.opening_ai, built, self._parser.parse_opening)

    async def generate_turn(self, ctx: TurnPromptContext) -> TurnPayload:
        """Next scene for the acting player's action."""
        built = self._prompt_builder.build_turn(ctx)
        return await self._generate(self.ai, built, self._parser.parse_turn)

    # === 내부 ===

    async def _generate(
        self,
        provider: AIProvider,
        built: BuiltPrompt,
        parse: Callable[[str], T],
    ) -> T:
        attempts = max(1, self._config.max_attempts)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            logger.info(
                "Calling %s for %s (attempt %d/%d)",
                provider.name,
                built.request_type.value,
                attempt,
                attempts,
            )
            try:
                raw = await self._call_provider(provider, built)
                result = parse(raw)
                logger.info(
                    "Valid %s payload received on attempt %d",
                    built.request_type.value,
                    attempt,
                )
                return result
            except (GenerationError, MalformedOutputError) as e:
                last_error = e
                logger.warning(
                    "Generation attempt %d/%d failed: %s", attempt, attempts, e
                )

            if attempt < attempts:
                delay = self._config.backoff_seconds * attempt
                logger.debug("Waiting %.2fs before next attempt", delay)
                await asyncio.sleep(delay)

        logger.error("Generation failed permanently after %d attempts", attempts)
        raise GenerationFailedError(
            f"Narrative generation failed after {attempts} attempts: {last_error}",
            {"attempts": attempts},
        ) from last_error

    async def _call_provider(self, provider: AIProvider, built: BuiltPrompt) -> str:
        """One bounded provider call. Every failure becomes GenerationError."""
        if not provider.is_available():
            raise GenerationError(f"Provider {provider.name} is not available")
        try:
            return await asyncio.wait_for(
                provider.generate_async(
                    built.user_prompt,
                    system_prompt=built.system_prompt,
                    max_tokens=built.max_tokens,
                    timeout=self._config.timeout_seconds,
                ),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"Provider {provider.name} timed out after "
                f"{self._config.timeout_seconds}s"
            ) from e
        except Exception as e:
            raise GenerationError(f"Provider {provider.name} failed: {e}") from e
