"""Gemini AI provider implementation."""

from typing import Any, Optional

import google.generativeai as genai

from storyrelay.core.logging import get_logger
from storyrelay.services.ai.base import AIProvider

logger = get_logger(__name__)


class GeminiProvider(AIProvider):
    """AI provider using Google Gemini API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        request_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the Gemini provider.

        Args:
            api_key: Google API key for Gemini.
            model: Model name to use.
            request_timeout: Default per-request timeout in seconds.
        """
        self._api_key = api_key
        self._model_name = model
        self._request_timeout = request_timeout
        self._model = None

        if self._api_key:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(self._model_name)
            logger.info("GeminiProvider initialized with model: %s", self._model_name)

    @property
    def name(self) -> str:
        """Return the provider name."""
        return "gemini"

    @property
    def model_name(self) -> str:
        return self._model_name

    def is_available(self) -> bool:
        """Check if the provider is available."""
        return bool(self._api_key) and self._model is not None

    def _prepare(
        self,
        system_prompt: Optional[str],
        max_tokens: int,
        timeout: Optional[float],
    ) -> tuple[Any, Any, dict[str, Any]]:
        """(model, generation_config, request_options) for one call."""
        if not self.is_available():
            raise RuntimeError("GeminiProvider is not available. Check API key.")

        assert self._model is not None

        # Rebuild model with system instruction if provided
        model = self._model
        if system_prompt:
            model = genai.GenerativeModel(
                self._model_name,
                system_instruction=system_prompt,
            )

        generation_config = genai.types.GenerationConfig(
            max_output_tokens=max_tokens,
            response_mime_type="application/json",
        )

        request_options: dict[str, Any] = {}
        timeout = timeout if timeout is not None else self._request_timeout
        if timeout is not None:
            request_options["timeout"] = timeout
        return model, generation_config, request_options

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> str:
        """Generate text using Gemini API in JSON response mode.

        Raises:
            RuntimeError: If API call fails or provider is not available.
        """
        model, generation_config, request_options = self._prepare(
            system_prompt, max_tokens, None
        )
        try:
            response = model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options=request_options,
            )
            result: str = response.text.strip()
            return result
        except Exception as e:
            logger.error("Gemini API error: %s", e)
            raise RuntimeError(f"Gemini API error: {e}") from e

    async def generate_async(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
    ) -> str:
        """Native async call; ``timeout`` bounds the HTTP request itself."""
        model, generation_config, request_options = self._prepare(
            system_prompt, max_tokens, timeout
        )
        try:
            response = await model.generate_content_async(
                prompt,
                generation_config=generation_config,
                request_options=request_options,
            )
            result: str = response.text.strip()
            return result
        except Exception as e:
            logger.error("Gemini API error: %s", e)
            raise RuntimeError(f"Gemini API error: {e}") from e
