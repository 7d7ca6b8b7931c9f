"""Narrative generator: turns the transcript and a chosen action into a scene.

The orchestrator only depends on the NarrativeGenerator protocol. LLMNarrator
is the production implementation: it renders a prompt, sends it through an
injected LLM callable and parses the JSON object the model answers with.

Expected model output:

    {"sceneDescription": "...", "actions": ["...", "..."], "imagePrompt": "..."}

An empty "actions" list ends the story.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Protocol

from pydantic import ValidationError

from dungeon_master.llm import LLM
from dungeon_master.models import SceneData, StorySegment

logger = logging.getLogger(__name__)


class NarrativeGenerator(Protocol):
    async def get_initial_scene(self) -> SceneData: ...

    async def get_next_scene(
        self, history: Sequence[StorySegment], action: str
    ) -> SceneData: ...


class NarrativeError(RuntimeError):
    """Raised when the narrator's output cannot be turned into a scene."""


SYSTEM_PROMPT = (
    "You are a master storyteller and Dungeon Master for a dark fantasy "
    "text adventure. Describe scenes vividly in the second person, in two "
    "or three short paragraphs. Offer the player 2 to 4 distinct actions. "
    "When the story reaches a natural ending (victory, death, or escape), "
    "return an empty actions list.\n"
    "Always answer with a single JSON object and nothing else:\n"
    '{"sceneDescription": "<the scene>", '
    '"actions": ["<action>", ...], '
    '"imagePrompt": "<a concise visual description of the scene for an illustrator>"}'
)


class LLMNarrator:
    """NarrativeGenerator backed by a text-completion LLM."""

    def __init__(self, llm: LLM, system_prompt: str = SYSTEM_PROMPT) -> None:
        self._llm = llm
        self._system_prompt = system_prompt

    async def get_initial_scene(self) -> SceneData:
        output = await self._llm("initial_scene", initial_scene_prompt(self._system_prompt))
        return parse_scene(output)

    async def get_next_scene(
        self, history: Sequence[StorySegment], action: str
    ) -> SceneData:
        prompt = next_scene_prompt(self._system_prompt, history, action)
        output = await self._llm("next_scene", prompt)
        return parse_scene(output)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def format_history(history: Sequence[StorySegment]) -> str:
    """Replay the transcript verbatim, one labelled line per segment."""
    labels = {"ai": "Narrator", "player": "Player"}
    return "\n\n".join(f"{labels[s.source]}: {s.text}" for s in history)


def initial_scene_prompt(system_prompt: str) -> str:
    return (
        f"{system_prompt}\n\n"
        "Begin a new adventure. Describe the opening scene where the player "
        "awakens or arrives somewhere mysterious.\n\n"
        "JSON:"
    )


def next_scene_prompt(
    system_prompt: str, history: Sequence[StorySegment], action: str
) -> str:
    return (
        f"{system_prompt}\n\n"
        f"Story so far:\n{format_history(history)}\n\n"
        f"The player chose: {action}\n"
        "Continue the story from this action.\n\n"
        "JSON:"
    )


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = [l for l in cleaned.split("\n")[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()
    return cleaned


def parse_scene(output: str) -> SceneData:
    """Parse narrator output into SceneData.

    Tolerates markdown fences and chatter around the object; anything that
    still isn't a valid scene raises NarrativeError.
    """
    cleaned = _strip_fences(output)
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        raise NarrativeError("The narrator did not return a JSON object")

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise NarrativeError(f"The narrator returned invalid JSON: {e}") from e

    try:
        scene = SceneData.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise NarrativeError(f"The narrator returned a malformed scene ({fields})") from e

    logger.debug(
        "parsed scene len=%d actions=%d", len(scene.scene_description), len(scene.actions)
    )
    return scene
