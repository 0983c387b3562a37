"""Team formation and roster edit route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from gamematch.api.routes import domain_error, get_engine, state_response
from gamematch.models.schemas import (
    ManualTeamRequest,
    ReturnToWaitingRequest,
    SwapBetweenTeamsRequest,
    SwapWithWaitingRequest,
)
from gamematch.services.errors import GameMatchError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams")
async def list_teams(engine: GameEngine = Depends(get_engine)):
    return [t.model_dump(mode="json") for t in engine.state.teams]


@router.post("/api/teams/auto-match")
async def auto_match(engine: GameEngine = Depends(get_engine)):
    """Form balanced queued teams from waiting participants."""
    try:
        teams = await engine.auto_match()
        return [t.model_dump(mode="json") for t in teams]
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error auto-matching teams: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error auto-matching teams: {str(e)}")


@router.post("/api/teams")
async def create_manual_team(body: ManualTeamRequest, engine: GameEngine = Depends(get_engine)):
    try:
        team = await engine.create_manual_team(body.player_ids)
        return team.model_dump(mode="json")
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error creating team: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating team: {str(e)}")


@router.delete("/api/teams/{team_id}")
async def delete_team(team_id: str, engine: GameEngine = Depends(get_engine)):
    try:
        await engine.delete_team(team_id)
        return {"success": True}
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting team: {str(e)}")


@router.post("/api/teams/{team_id}/swap-waiting")
async def swap_with_waiting(
    team_id: str, body: SwapWithWaitingRequest, engine: GameEngine = Depends(get_engine)
):
    """Replace a queued member with a waiting participant."""
    try:
        await engine.swap_with_waiting(team_id, body.queued_player_id, body.waiting_player_id)
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error swapping into team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error swapping players: {str(e)}")


@router.post("/api/teams/swap")
async def swap_between_teams(body: SwapBetweenTeamsRequest, engine: GameEngine = Depends(get_engine)):
    try:
        await engine.swap_between_teams(
            body.source_team_id, body.source_player_id, body.target_team_id, body.target_player_id
        )
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error swapping between teams: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error swapping players: {str(e)}")


@router.post("/api/teams/{team_id}/return")
async def return_to_waiting(
    team_id: str, body: ReturnToWaitingRequest, engine: GameEngine = Depends(get_engine)
):
    """Send one member back to waiting."""
    try:
        await engine.return_to_waiting(team_id, body.player_id)
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error returning player from team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error returning player: {str(e)}")
