import asyncio
from collections.abc import Sequence

import pytest

from dungeon_master.models import SceneData, StorySegment
from dungeon_master.orchestrator import GameFlow


async def _resolve(item):
    """Queued stub responses may be values, exceptions, or futures to await."""
    if isinstance(item, asyncio.Future):
        item = await item
    if isinstance(item, BaseException):
        raise item
    return item


class StubNarrator:
    """Returns queued scenes in order and records every call."""

    def __init__(self, responses: Sequence = ()) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, tuple[StorySegment, ...], str | None]] = []

    async def get_initial_scene(self) -> SceneData:
        self.calls.append(("initial", (), None))
        return await _resolve(self.responses.pop(0))

    async def get_next_scene(self, history, action) -> SceneData:
        self.calls.append(("next", tuple(history), action))
        return await _resolve(self.responses.pop(0))


class StubIllustrator:
    """Returns queued image refs in order; falls back to "img:<prompt>"."""

    def __init__(self, responses: Sequence = ()) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    async def generate_scene_image(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            return f"img:{prompt}"
        return await _resolve(self.responses.pop(0))


@pytest.fixture
def make_flow():
    """Factory: make_flow(scenes, images, **kwargs) -> (flow, narrator, illustrator)."""

    def _make(scenes=(), images=(), **kwargs):
        narrator = StubNarrator(scenes)
        illustrator = StubIllustrator(images)
        return GameFlow(narrator, illustrator, **kwargs), narrator, illustrator

    return _make
