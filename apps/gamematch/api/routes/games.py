"""Game start/end route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from gamematch.api.routes import domain_error, get_engine, state_response
from gamematch.models.schemas import StartGameRequest
from gamematch.services.errors import GameMatchError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/games/start/{team_id}")
async def start_game(team_id: str, body: StartGameRequest, engine: GameEngine = Depends(get_engine)):
    """Put a queued team on a court (first free court unless one is given)."""
    try:
        await engine.start_game(team_id, court_id=body.court_id)
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error starting game for team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error starting game: {str(e)}")


@router.post("/api/games/start-all")
async def start_queued_games(engine: GameEngine = Depends(get_engine)):
    try:
        await engine.start_queued_games()
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error starting queued games: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error starting games: {str(e)}")


@router.post("/api/games/end/{court_id}")
async def end_game(court_id: str, engine: GameEngine = Depends(get_engine)):
    try:
        await engine.end_game(court_id)
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error ending game on {court_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error ending game: {str(e)}")


@router.post("/api/games/end-all")
async def end_all_games(engine: GameEngine = Depends(get_engine)):
    try:
        await engine.end_all_games()
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error ending games: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error ending games: {str(e)}")
