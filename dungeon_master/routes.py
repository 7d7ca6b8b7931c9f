"""FastAPI endpoints under /api.

Sessions live in memory on app.state.sessions, one GameFlow each. The only
ways to change a session are the two commands, start and actions; everything
else reads snapshots.

Commands return as soon as the turn's status is known. The illustration keeps
resolving in the background unless the caller passes ?wait_for_image=true.
"""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from dungeon_master.models import SessionSnapshot
from dungeon_master.orchestrator import GameFlow

router = APIRouter()


class ActionBody(BaseModel):
    action: str


def _sessions(request: Request) -> dict[str, GameFlow]:
    return request.app.state.sessions


def _get_flow(request: Request, session_id: str) -> GameFlow:
    flow = _sessions(request).get(session_id)
    if flow is None:
        raise HTTPException(404, "Session not found")
    return flow


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/sessions", status_code=201)
async def create_session(request: Request) -> SessionSnapshot:
    """Create an empty session waiting for start."""
    flow = request.app.state.new_flow()
    _sessions(request)[flow.session_id] = flow
    return flow.snapshot()


@router.get("/sessions")
async def list_sessions(request: Request) -> list[SessionSnapshot]:
    """List every session held in memory."""
    return [flow.snapshot() for flow in _sessions(request).values()]


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str) -> SessionSnapshot:
    """Current read-only view of a session."""
    return _get_flow(request, session_id).snapshot()


@router.delete("/sessions/{session_id}")
async def delete_session(request: Request, session_id: str):
    """Forget a session, abandoning any illustration still in flight."""
    flow = _sessions(request).pop(session_id, None)
    if flow is None:
        raise HTTPException(404, "Session not found")
    await flow.aclose()
    return {"ok": True}


@router.post("/sessions/{session_id}/start")
async def start_session(
    request: Request, session_id: str, wait_for_image: bool = False
) -> SessionSnapshot:
    """Begin (or restart) the story."""
    flow = _get_flow(request, session_id)
    if not await flow.start():
        raise HTTPException(409, "A turn is already in progress")
    if wait_for_image:
        await flow.wait_for_image()
    return flow.snapshot()


@router.post("/sessions/{session_id}/actions")
async def submit_action(
    request: Request, session_id: str, body: ActionBody, wait_for_image: bool = False
) -> SessionSnapshot:
    """Play one of the offered actions (or any free-form text)."""
    flow = _get_flow(request, session_id)
    if not await flow.submit_action(body.action):
        status = flow.snapshot().status.value
        raise HTTPException(409, f"Cannot take an action while the session is {status}")
    if wait_for_image:
        await flow.wait_for_image()
    return flow.snapshot()
