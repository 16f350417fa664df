"""Generator output parsing: JSON extraction + schema validation"""

import json
import logging
import re
from typing import TypeVar

from pydantic import ValidationError

from storyrelay.core.errors import MalformedOutputError
from storyrelay.services.narrative_types import OpeningPayload, ScenePayload, TurnPayload

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=ScenePayload)


class ResponseParser:
    """Turns raw LLM text into validated payloads or raises MalformedOutputError."""

    def parse_opening(self, raw: str) -> OpeningPayload:
        return self._parse(raw, OpeningPayload)

    def parse_turn(self, raw: str) -> TurnPayload:
        return self._parse(raw, TurnPayload)

    def _parse(self, raw: str, model: type[PayloadT]) -> PayloadT:
        """Parse stages:
        1. whole text as JSON
        2. ```json ... ``` fenced block
        3. fail with MalformedOutputError
        """
        if not raw or not raw.strip():
            raise MalformedOutputError("Empty response from narrative generator")

        parsed = self._try_parse_json(raw.strip())
        if parsed is None:
            json_block = self._extract_json_block(raw)
            if json_block is not None:
                parsed = self._try_parse_json(json_block)

        if parsed is None:
            logger.warning("Generator output is not a JSON object: %.200s", raw)
            raise MalformedOutputError("Failed to parse generator JSON response")

        try:
            return model.model_validate(parsed)
        except ValidationError as e:
            logger.warning(
                "Generator output failed %s validation: %s",
                model.__name__,
                e.errors(include_url=False),
            )
            raise MalformedOutputError(
                f"Generator JSON is missing required fields or has invalid types "
                f"({e.error_count()} error(s))"
            ) from e

    def _try_parse_json(self, text: str) -> dict | None:
        """JSON parse attempt. None on failure or when the top level is not an object."""
        try:
            result = json.loads(text)
            if isinstance(result, dict):
                return result
            return None
        except (json.JSONDecodeError, TypeError):
            return None

    def _extract_json_block(self, text: str) -> str | None:
        """Extract a ```json ... ``` block."""
        match = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
        if match:
            return match.group(1)
        return None
