import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from dungeon_master.config import Settings, get_settings
from dungeon_master.demo import PlaceholderIllustrator, ScriptedNarrator
from dungeon_master.illustrator import HttpIllustrator, ImageGenerator
from dungeon_master.llm import HttpLLM
from dungeon_master.narrator import LLMNarrator, NarrativeGenerator
from dungeon_master.orchestrator import GameFlow
from dungeon_master.routes import router

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)


def build_generators(settings: Settings) -> tuple[NarrativeGenerator, ImageGenerator]:
    """Construct the narrator and illustrator the settings ask for."""
    if settings.demo:
        logger.info("demo mode: using scripted narrator and placeholder images")
        return ScriptedNarrator(), PlaceholderIllustrator()

    n = settings.narrator
    narrator = LLMNarrator(HttpLLM(
        provider_url=n.provider_url,
        api_key=n.api_key,
        provider_format=n.provider_format,
        model=n.model,
        max_tokens=n.max_tokens,
        timeout=n.timeout,
    ))
    i = settings.illustrator
    illustrator = HttpIllustrator(
        provider_url=i.provider_url,
        api_key=i.api_key,
        model=i.model,
        size=i.size,
        timeout=i.timeout,
    )
    return narrator, illustrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    flows = list(app.state.sessions.values())
    if flows:
        logger.info("shutdown: closing %d session(s)", len(flows))
        await asyncio.gather(*(flow.aclose() for flow in flows))


def create_app(
    settings: Settings | None = None,
    narrator: NarrativeGenerator | None = None,
    illustrator: ImageGenerator | None = None,
) -> FastAPI:
    resolved = settings or get_settings()
    if narrator is None or illustrator is None:
        default_narrator, default_illustrator = build_generators(resolved)
        narrator = narrator or default_narrator
        illustrator = illustrator or default_illustrator

    app = FastAPI(title="Dungeon Master", lifespan=lifespan)
    app.state.sessions = {}
    app.state.new_flow = lambda: GameFlow(
        narrator,
        illustrator,
        narrative_timeout=resolved.narrative_timeout,
        image_timeout=resolved.image_timeout,
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (settings from DM_* env vars / DM_CONFIG_FILE)
app = create_app()
