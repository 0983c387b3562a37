"""Session route handlers: state, settings, sync, reset and audit trail."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from gamematch.api.routes import domain_error, get_engine, state_response
from gamematch.models.schemas import CreateSessionRequest, UpdateSessionRequest
from gamematch.services.errors import GameMatchError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/state")
async def get_state(engine: GameEngine = Depends(get_engine)):
    """Current local session state."""
    return state_response(engine)


@router.post("/api/session")
async def create_session(body: CreateSessionRequest, engine: GameEngine = Depends(get_engine)):
    """Start a fresh session (drops participants and teams)."""
    try:
        await engine.create_session(
            name=body.name,
            courts_count=body.courts_count,
            team_size=body.team_size,
            game_duration_min=body.game_duration_min,
        )
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error creating session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating session: {str(e)}")


@router.patch("/api/session")
async def update_session(body: UpdateSessionRequest, engine: GameEngine = Depends(get_engine)):
    """Change session name, court count, team size or game duration."""
    try:
        await engine.update_session(**body.model_dump(exclude_none=True))
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error updating session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating session: {str(e)}")


@router.post("/api/session/reset")
async def reset_session(engine: GameEngine = Depends(get_engine)):
    """Everyone back to waiting with zeroed stats."""
    try:
        await engine.reset_session()
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error resetting session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error resetting session: {str(e)}")


@router.post("/api/sync")
async def sync(engine: GameEngine = Depends(get_engine)):
    """Re-read the store and rebuild local state."""
    await engine.sync()
    return state_response(engine)


@router.get("/api/audit")
async def get_audit_log(engine: GameEngine = Depends(get_engine)):
    return [entry.model_dump(mode="json") for entry in engine.audit_log()]
