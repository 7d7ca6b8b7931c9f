"""Dungeon Master: an illustrated, LLM-narrated text adventure.

The game flow lives in orchestrator.GameFlow; narrator and illustrator are
pluggable generators behind small protocols.
"""

from dungeon_master.models import GameStatus, SceneData, SessionSnapshot, StorySegment  # noqa: F401
from dungeon_master.orchestrator import GameFlow  # noqa: F401
