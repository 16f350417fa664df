"""Abstract base class for AI providers."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional


class AIProvider(ABC):
    """Abstract base class for AI providers.

    All AI providers must implement this interface to ensure
    consistent behavior across different LLM APIs. The narrative service
    awaits ``generate_async``; providers backed by a network API override it
    with a native async call that honours ``timeout``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is available and configured."""
        ...

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> str:
        """Generate text based on the prompt.

        Args:
            prompt: The user prompt (history and acting player's action).
            system_prompt: Game master instructions and session context.
            max_tokens: Maximum tokens for the response.

        Returns:
            Raw generated text, expected to hold one JSON object.
        """
        ...

    async def generate_async(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
    ) -> str:
        """Awaitable ``generate``.

        The default runs the blocking call in a worker thread. A thread cannot
        be cancelled, so a blocking provider that hangs keeps its thread busy
        after the caller's timeout fires.
        """
        return await asyncio.to_thread(self.generate, prompt, system_prompt, max_tokens)
