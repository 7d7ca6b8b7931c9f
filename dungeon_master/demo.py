"""Offline generators for running the game without any backend.

ScriptedNarrator plays a short fixed adventure; PlaceholderIllustrator returns
an SVG card captioned with the image prompt. Both satisfy the same protocols
as the real clients, so `main.py --demo` exercises the full turn flow.
"""

from __future__ import annotations

import asyncio
import base64
import html
import textwrap
from collections.abc import Sequence

from dungeon_master.models import SceneData, StorySegment

# scene key -> (description, [(action label, next scene key)], image prompt)
SCRIPT: dict[str, tuple[str, list[tuple[str, str]], str]] = {
    "cell": (
        "You wake in a cell. Cold stone presses against your cheek and the "
        "air smells of wet straw. A heavy wooden door stands slightly ajar.",
        [("Push the door", "corridor"), ("Shout for the guard", "guard"),
         ("Search the straw", "key")],
        "a dark dungeon cell lit by a single shaft of moonlight",
    ),
    "guard": (
        "Boots scrape on stone. A bored guard peers through the bars, "
        "keys jangling at his belt.",
        [("Feign sickness", "sick"), ("Stay silent", "forgotten")],
        "a dungeon guard peering through iron bars, torchlight",
    ),
    "sick": (
        "You groan and clutch your stomach. The guard curses, unlocks the "
        "door and steps inside to take a look.",
        [("Slip past the guard", "corridor")],
        "a guard leaning over a prisoner in a cramped cell",
    ),
    "key": (
        "Under the straw your fingers close around a rusted iron key.",
        [("Unlock the door", "corridor"), ("Shout for the guard", "guard")],
        "a rusted iron key half buried in straw",
    ),
    "corridor": (
        "The door groans open onto a long corridor. A cool draft carries "
        "the scent of rain; a torch sputters in a bracket on the wall.",
        [("Follow the draft", "escape"), ("Take the torch", "fire")],
        "a long stone corridor with a sputtering wall torch",
    ),
    "escape": (
        "The draft leads you up a spiral stair and out under an open, "
        "rain-washed sky. You are free.",
        [],
        "a lone figure emerging from a tower into the rain at dawn",
    ),
    "fire": (
        "The torch slips from its bracket and the old tapestries catch at "
        "once. Smoke fills the corridor and your tale ends here.",
        [],
        "a burning corridor filled with smoke and falling tapestries",
    ),
    "forgotten": (
        "The guard shrugs and walks away. Days pass, then weeks. The "
        "dungeon keeps you, and the world forgets your name.",
        [],
        "an empty cell with scratch marks counting days on the wall",
    ),
}

START_SCENE = "cell"
_NEXT_SCENE = {label: target for _, actions, _ in SCRIPT.values() for label, target in actions}
_LOST = (
    "You hesitate, unsure what that would even mean here. The torch gutters "
    "out and the darkness swallows you.",
    "total darkness, a faint outline of a hand",
)


def _scene(key: str) -> SceneData:
    description, actions, image_prompt = SCRIPT[key]
    return SceneData(
        scene_description=description,
        actions=[label for label, _ in actions],
        image_prompt=image_prompt,
    )


class ScriptedNarrator:
    """NarrativeGenerator that follows SCRIPT; unknown actions end the story."""

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    async def get_initial_scene(self) -> SceneData:
        await asyncio.sleep(self._delay)
        return _scene(START_SCENE)

    async def get_next_scene(
        self, history: Sequence[StorySegment], action: str
    ) -> SceneData:
        await asyncio.sleep(self._delay)
        key = _NEXT_SCENE.get(action)
        if key is None:
            description, image_prompt = _LOST
            return SceneData(scene_description=description, actions=[], image_prompt=image_prompt)
        return _scene(key)


class PlaceholderIllustrator:
    """ImageGenerator returning an SVG data: URI captioned with the prompt."""

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    async def generate_scene_image(self, prompt: str) -> str:
        await asyncio.sleep(self._delay)
        lines = textwrap.wrap(prompt, width=40)[:6]
        text = "".join(
            f'<text x="256" y="{220 + 24 * i}" text-anchor="middle">{html.escape(line)}</text>'
            for i, line in enumerate(lines)
        )
        svg = (
            '<svg xmlns="http://www.w3.org/2000/svg" width="512" height="512">'
            '<rect width="512" height="512" fill="#1f1b2e"/>'
            f'<g fill="#e0c097" font-family="serif" font-size="18">{text}</g>'
            "</svg>"
        )
        encoded = base64.b64encode(svg.encode()).decode()
        return f"data:image/svg+xml;base64,{encoded}"
