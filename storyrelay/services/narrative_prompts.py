"""Prompt builders for the opening scene and for subsequent turns."""

import json
import logging

from storyrelay.core.session.context_builder import (
    build_goal_context,
    build_history_transcript,
    build_player_list,
)
from storyrelay.services.narrative_types import (
    BuiltPrompt,
    NarrativeConfig,
    NarrativeRequestType,
    OpeningPromptContext,
    TurnPromptContext,
)

logger = logging.getLogger(__name__)

PLAYER_ACTION_HEADER = "--- Player Action"

# --- System Prompt Template ---

GM_SYSTEM_PROMPT = """\
You are the Game Master of a text-based role-playing adventure shared by one
or more players. Interpret the acting player's action, decide the outcome,
advance the story and track progress toward the game goal. Build an original,
vivid world that stays true to the chosen theme.

Your entire response MUST be a single valid JSON object and nothing else.

Session players:
{player_list}
(The player marked '[Acting Player]' performs the action this turn.)

Goal context:
- Game Goal: {game_goal}
- All Prerequisites: {goal_prerequisites}
- Prerequisites Met So Far: {met_prerequisites}

Output for the FIRST turn:
{{
  "narrative": "Opening scene. Do not mention the goal or prerequisites.",
  "timeOfDay": "Time of day",
  "image_prompt": "Scene image prompt, no player characters",
  "suggested_actions": ["action", "action", "unexpected action", "absurd action"],
  "isSameLocation": true,
  "characters": [],
  "game_goal": "A clear, achievable objective fitting the theme",
  "goal_prerequisites": ["2 to 4 concise steps required before the goal"]
}}

Output for EVERY LATER turn:
{{
  "narrative": "Outcome of the acting player's action",
  "timeOfDay": "Updated time of day",
  "image_prompt": "Updated scene image prompt",
  "suggested_actions": ["next player's options, two of them unexpected or absurd"],
  "isSameLocation": true,
  "characters": [{{"name": "", "description": "", "appearance": "", "opinionOfPlayer": ""}}],
  "updated_met_prerequisites": ["ALL prerequisites met so far, including new ones"],
  "is_goal_met_this_turn": false
}}

Rules:
- Copy prerequisite strings exactly when reporting them as met.
- is_goal_met_this_turn may be true only if the action accomplishes the goal
  AND every prerequisite was already listed as met BEFORE this action.
- Never reveal the goal or the prerequisite list unless the story itself does.
- Address the acting player as "you"; refer to other players by name.
- Only list NPCs who are present; never list player characters as NPCs.
- Image prompts reflect the scene and mood and never show player characters.
- Keep continuity, but let the world stay dynamic. No meta-gaming."""

OPENING_GOAL_PLACEHOLDER = "(to be created by you this turn)"

OPENING_INSTRUCTION_SOLO = (
    "Start a new game in the {theme} genre for character {name} ({gender}). "
    "This will be the only player character in the game. "
    "Generate the initial scenario, goal, and prerequisites."
)

OPENING_INSTRUCTION_PARTY = (
    "Start a new game in the {theme} genre for character {name} ({gender}). "
    "Other player characters will join this party later; do not mention them "
    "yet. Generate the initial scenario, goal, and prerequisites."
)

TURN_INSTRUCTION = (
    "Determine the outcome and continue the story. Using the goal context, "
    "report every prerequisite met so far in 'updated_met_prerequisites' and "
    "decide 'is_goal_met_this_turn'. Answer with the later-turn JSON structure."
)

# --- Character portraits ---

PORTRAIT_STYLES: dict[str, str] = {
    "fantasy": "fantasy art, digital painting, detailed illustration, character portrait",
    "sci-fi": "sci-fi art, futuristic, detailed concept art, character portrait",
    "cyberpunk noir": "cyberpunk art, noir film style, neon lighting, rain, character portrait",
    "mystery": "photorealistic, dramatic lighting, suspenseful, character portrait",
    "horror": "horror art, dark fantasy, atmospheric, unsettling, character portrait",
    "western": "western art, realistic painting, dusty, character portrait",
}
DEFAULT_PORTRAIT_STYLE = "digital painting, detailed, character concept art"


def build_portrait_prompt(
    theme: str, name: str, gender: str, description: str | None = None
) -> str:
    """Image prompt for a player character portrait."""
    style = PORTRAIT_STYLES.get(theme.strip().lower(), DEFAULT_PORTRAIT_STYLE)
    prompt = f"{gender} character named {name}, {theme}. {style}."
    if description and description.strip():
        prompt += f" Additional details: {description.strip()}."
    return prompt


class PromptBuilder:
    """Assembles system and user prompts per request type"""

    def __init__(self, config: NarrativeConfig):
        self._config = config

    def build_opening(self, ctx: OpeningPromptContext) -> BuiltPrompt:
        """Turn 0: only the creator is known, there is no goal yet."""
        system_prompt = GM_SYSTEM_PROMPT.format(
            player_list=build_player_list([ctx.creator], ctx.creator.user_id),
            game_goal=OPENING_GOAL_PLACEHOLDER,
            goal_prerequisites=OPENING_GOAL_PLACEHOLDER,
            met_prerequisites="[]",
        )
        template = (
            OPENING_INSTRUCTION_PARTY if ctx.is_multiplayer else OPENING_INSTRUCTION_SOLO
        )
        user_prompt = template.format(
            theme=ctx.theme,
            name=ctx.creator.character_name,
            gender=ctx.creator.character_gender,
        )
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=self._config.max_tokens,
            request_type=NarrativeRequestType.OPENING,
        )

    def build_turn(self, ctx: TurnPromptContext) -> BuiltPrompt:
        """Turn N: history transcript, annotated roster, goal state, action."""
        goal = build_goal_context(ctx.goal)
        system_prompt = GM_SYSTEM_PROMPT.format(
            player_list=build_player_list(ctx.players, ctx.acting_user_id),
            game_goal=goal["game_goal"],
            goal_prerequisites=json.dumps(goal["goal_prerequisites"], ensure_ascii=False),
            met_prerequisites=json.dumps(goal["met_prerequisites"], ensure_ascii=False),
        )

        actor = next(
            (p for p in ctx.players if p.user_id == ctx.acting_user_id), None
        )
        actor_name = actor.character_name if actor else "Unknown"

        user_prompt = (
            f"Theme: {ctx.theme}\n\n"
            f"--- Game History ---\n"
            f"{build_history_transcript(ctx.history, ctx.players)}\n\n"
            f"{PLAYER_ACTION_HEADER} (from {actor_name}) ---\n"
            f"{ctx.action}\n\n"
            f"{TURN_INSTRUCTION}"
        )
        logger.debug(
            "Built turn prompt: %d history turns, actor=%s", len(ctx.history), actor_name
        )
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=self._config.max_tokens,
            request_type=NarrativeRequestType.TURN,
        )
