"""Core domain models.

The orchestrator, the generators and the HTTP layer all operate on these
types. Pydantic is used for validation and serialisation at every data
boundary.
"""

from __future__ import annotations

import itertools
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

_segment_ids = itertools.count(1)


class GameStatus(str, Enum):
    START = "start"
    LOADING = "loading"
    PLAYING = "playing"
    GAME_OVER = "game_over"
    ERROR = "error"


SegmentSource = Literal["ai", "player"]


class StorySegment(BaseModel):
    """One entry in the append-only transcript.

    Ids come from a process-wide counter, so sorting by id gives creation
    order even for segments created in the same instant.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(default_factory=lambda: next(_segment_ids))
    source: SegmentSource
    text: str


class SceneData(BaseModel):
    """What the narrative generator returns for every turn.

    Accepts both the snake_case field names and the camelCase names used
    on the wire (``sceneDescription``, ``imagePrompt``).
    """

    model_config = ConfigDict(populate_by_name=True)

    scene_description: str = Field(alias="sceneDescription")
    actions: list[str]
    image_prompt: str = Field(alias="imagePrompt")


class SessionSnapshot(BaseModel):
    """Read-only projection of one session, handed to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    status: GameStatus
    history: tuple[StorySegment, ...] = ()
    actions: tuple[str, ...] = ()
    image: str | None = None
    image_pending: bool = False  # the current turn's illustration has not settled
    error: str | None = None

    @model_validator(mode="after")
    def _check_status_invariants(self) -> SessionSnapshot:
        if self.status is GameStatus.GAME_OVER and self.actions:
            raise ValueError("game_over session cannot offer actions")
        if self.status is GameStatus.PLAYING and not (self.actions and self.history):
            raise ValueError("playing session needs actions and history")
        if (self.status is GameStatus.ERROR) != bool(self.error):
            raise ValueError("error message must be set exactly when status is error")
        return self
