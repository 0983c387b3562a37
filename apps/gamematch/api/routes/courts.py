"""Court route handlers."""

import logging

from fastapi import APIRouter, Depends

from gamematch.api.routes import domain_error, get_engine, state_response
from gamematch.models.schemas import ElapsedResponse
from gamematch.services.errors import GameMatchError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/courts")
async def list_courts(engine: GameEngine = Depends(get_engine)):
    return [c.model_dump(mode="json") for c in engine.state.courts]


@router.post("/api/courts/{court_id}/pause")
async def toggle_court_pause(court_id: str, engine: GameEngine = Depends(get_engine)):
    """Flip the court's pause flag."""
    try:
        await engine.toggle_court_pause(court_id)
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)


@router.get("/api/courts/{court_id}/elapsed", response_model=ElapsedResponse)
async def get_elapsed(court_id: str, engine: GameEngine = Depends(get_engine)):
    """Time the current game on the court has been running."""
    try:
        return ElapsedResponse(court_id=court_id, elapsed_ms=engine.elapsed(court_id))
    except GameMatchError as e:
        raise domain_error(e)
