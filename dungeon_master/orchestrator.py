"""Game flow orchestrator: owns one session and runs its turns.

State machine:

    start     --start()--------------> loading
    playing   --submit_action(a)-----> loading
    error     --start()--------------> loading   (fresh session)
    game_over --start()--------------> loading   (fresh session)
    loading   --narrative ok---------> playing | game_over
    loading   --narrative failed-----> error

Turn flow:
  1. Gate: a command arriving while a turn is in flight is rejected and
     leaves the session untouched. submit_action() is only accepted while
     playing.
  2. Reset the session (start) or append the player's segment (submit).
  3. Wait for the previous turn's illustration, if still pending, so calls
     from different turns never overlap.
  4. Call the narrative generator.
  5. Commit the AI segment, the new actions and playing/game_over in one
     step, then schedule the image call as a separate task and return.
  6. The image task commits `image` whenever it settles. An image failure
     is cosmetic: logged, never turned into an error status.

Every commit is a plain synchronous block on the event loop, so readers of
snapshot() never see a half-applied update. Listeners registered with
subscribe() get a fresh snapshot after each commit.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

from dungeon_master.illustrator import ImageGenerator
from dungeon_master.models import GameStatus, SceneData, SessionSnapshot, StorySegment
from dungeon_master.narrator import NarrativeGenerator

logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], None]

UNKNOWN_ERROR = "An unknown error occurred."


class GameFlow:
    """Single-session state machine driving the narrator and illustrator.

    Args:
        narrator:          Produces scenes; its failures fail the turn.
        illustrator:       Renders image prompts; its failures are cosmetic.
        session_id:        Stable identifier for this session slot.
        narrative_timeout: Seconds before a narrator call fails the turn.
                           None waits forever.
        image_timeout:     Seconds before an illustration is given up on.
    """

    def __init__(
        self,
        narrator: NarrativeGenerator,
        illustrator: ImageGenerator,
        *,
        session_id: str | None = None,
        narrative_timeout: float | None = None,
        image_timeout: float | None = None,
    ) -> None:
        self._narrator = narrator
        self._illustrator = illustrator
        self.session_id = session_id or uuid.uuid4().hex
        self._narrative_timeout = narrative_timeout
        self._image_timeout = image_timeout

        self._status = GameStatus.START
        self._history: list[StorySegment] = []
        self._actions: list[str] = []
        self._image: str | None = None
        self._error: str | None = None

        # Bumped on every start(); image results from an older epoch are dropped.
        self._epoch = 0
        self._image_task: asyncio.Task | None = None
        self._image_pending = False
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            status=self._status,
            history=tuple(self._history),
            actions=tuple(self._actions),
            image=self._image,
            image_pending=self._image_pending,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_for_image(self) -> None:
        """Block until the most recent illustration call has settled."""
        task = self._image_task
        if task is not None:
            await asyncio.wait({task})

    async def aclose(self) -> None:
        """Cancel an outstanding illustration and wait for it to unwind."""
        task = self._image_task
        if task is None or task.done():
            return
        logger.debug("session=%s cancelling pending illustration", self.session_id)
        task.cancel()
        await asyncio.wait({task})
        self._image_pending = False

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Begin a fresh session. Returns False if a turn is already in flight."""
        if self._status is GameStatus.LOADING:
            logger.warning("start rejected session=%s: turn in flight", self.session_id)
            return False

        self._epoch += 1
        self._status = GameStatus.LOADING
        self._history = []
        self._actions = []
        self._image = None
        self._image_pending = False
        self._error = None
        self._notify()

        logger.info("session=%s starting new story", self.session_id)
        await self._play_turn(self._narrator.get_initial_scene, restore_actions=[])
        return True

    async def submit_action(self, action: str) -> bool:
        """Play one player action. Returns False unless the session is playing."""
        if self._status is not GameStatus.PLAYING:
            logger.warning(
                "submit_action rejected session=%s status=%s",
                self.session_id, self._status.value,
            )
            return False

        restore_actions = list(self._actions)
        self._history.append(StorySegment(source="player", text=action))
        self._actions = []
        self._status = GameStatus.LOADING
        self._notify()

        history = tuple(self._history)
        logger.info("session=%s action=%r turn=%d", self.session_id, action, len(history))
        await self._play_turn(
            lambda: self._narrator.get_next_scene(history, action),
            restore_actions=restore_actions,
        )
        return True

    # ------------------------------------------------------------------
    # Turn internals
    # ------------------------------------------------------------------

    async def _play_turn(
        self,
        request: Callable[[], Awaitable[SceneData]],
        restore_actions: list[str],
    ) -> None:
        try:
            await self._settle_previous_image()
            result = await asyncio.wait_for(request(), self._narrative_timeout)
            scene = SceneData.model_validate(result)
        except asyncio.CancelledError:
            # Leave the gate open so the session can be restarted.
            self._fail("The turn was cancelled.", restore_actions)
            raise
        except Exception as e:
            self._fail(self._failure_message(e), restore_actions)
            return

        self._history.append(StorySegment(source="ai", text=scene.scene_description))
        self._actions = list(scene.actions)
        self._status = GameStatus.PLAYING if self._actions else GameStatus.GAME_OVER
        self._image_pending = True
        self._image_task = asyncio.create_task(
            self._resolve_image(self._epoch, scene.image_prompt)
        )
        logger.info(
            "session=%s status=%s actions=%d",
            self.session_id, self._status.value, len(self._actions),
        )
        self._notify()

    async def _settle_previous_image(self) -> None:
        task = self._image_task
        if task is not None and not task.done():
            logger.debug("session=%s waiting for previous illustration", self.session_id)
            await asyncio.wait({task})

    async def _resolve_image(self, epoch: int, prompt: str) -> None:
        try:
            image = await asyncio.wait_for(
                self._illustrator.generate_scene_image(prompt), self._image_timeout
            )
        except Exception as e:
            logger.warning(
                "session=%s illustration failed, keeping previous image: %s",
                self.session_id, str(e) or type(e).__name__,
            )
            image = None

        if image is not None and not isinstance(image, str):
            logger.warning(
                "session=%s illustrator returned %s instead of an image reference",
                self.session_id, type(image).__name__,
            )
            image = None

        if epoch != self._epoch:
            logger.debug("session=%s dropping illustration from an abandoned story", self.session_id)
            return

        if image is not None:
            self._image = image
        self._image_pending = False
        self._notify()

    def _failure_message(self, e: Exception) -> str:
        if isinstance(e, asyncio.TimeoutError) and self._narrative_timeout is not None:
            return f"The storyteller did not answer within {self._narrative_timeout:g} seconds."
        return str(e) or UNKNOWN_ERROR

    def _fail(self, message: str, restore_actions: list[str]) -> None:
        # The player's own segment, if any, stays in the history.
        self._actions = list(restore_actions)
        self._error = message
        self._status = GameStatus.ERROR
        logger.warning("session=%s turn failed: %s", self.session_id, message)
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                logger.warning("session=%s listener failed: %s", self.session_id, e)
