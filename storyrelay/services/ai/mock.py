"""Mock AI provider for development and tests."""

import json
from typing import Optional

from storyrelay.services.ai.base import AIProvider
from storyrelay.services.narrative_prompts import PLAYER_ACTION_HEADER

MOCK_OPENING_RESPONSE = json.dumps(
    {
        "narrative": "You wake in a dim stone chamber. Somewhere water drips.",
        "timeOfDay": "Night",
        "image_prompt": "A dim stone chamber lit by a single torch, digital painting",
        "suggested_actions": [
            "Search the room",
            "Call out into the darkness",
            "Lick the damp wall",
            "Challenge the torch to a duel",
        ],
        "isSameLocation": True,
        "characters": [],
        "game_goal": "Escape the sunken keep",
        "goal_prerequisites": [
            "Find the rusted key",
            "Learn the warden's name",
        ],
    }
)

MOCK_TURN_RESPONSE = json.dumps(
    {
        "narrative": "Your effort echoes through the chamber. Nothing stirs yet.",
        "timeOfDay": "Night",
        "image_prompt": "A stone chamber, shadows shifting, digital painting",
        "suggested_actions": [
            "Look closer",
            "Move on",
            "Hum loudly",
            "Count the stones",
        ],
        "isSameLocation": True,
        "characters": [],
        "updated_met_prerequisites": [],
        "is_goal_met_this_turn": False,
    }
)


class MockProvider(AIProvider):
    """Mock AI provider that returns static, schema-valid JSON.

    Used for testing and as a fallback when no API key is configured.
    """

    @property
    def name(self) -> str:
        """Return the provider name."""
        return "mock"

    def is_available(self) -> bool:
        """Check if the provider is available."""
        return True

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> str:
        """Generate mock JSON: subsequent-turn shape when an action is present."""
        if PLAYER_ACTION_HEADER in prompt:
            return MOCK_TURN_RESPONSE
        return MOCK_OPENING_RESPONSE

    async def generate_async(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
    ) -> str:
        """Answer inline; no worker thread needed."""
        return self.generate(prompt, system_prompt, max_tokens)
