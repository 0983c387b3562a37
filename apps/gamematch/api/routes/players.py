"""Participant route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from gamematch.api.routes import domain_error, get_engine, state_response
from gamematch.models.schemas import (
    AddPlayerRequest,
    AddPlayersRequest,
    AdjustGameCountRequest,
    DeletePlayersRequest,
    SetPlayerStateRequest,
    UpdatePlayerRequest,
)
from gamematch.services.errors import GameMatchError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/players")
async def list_players(engine: GameEngine = Depends(get_engine)):
    return [p.model_dump(mode="json") for p in engine.state.players]


@router.post("/api/players")
async def add_player(body: AddPlayerRequest, engine: GameEngine = Depends(get_engine)):
    """Add one participant; a clashing name gets a ``(N)`` suffix."""
    try:
        player = await engine.add_player(body.name, rank=body.rank, gender=body.gender)
        return player.model_dump(mode="json")
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error adding player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding player: {str(e)}")


@router.post("/api/players/batch")
async def add_players(body: AddPlayersRequest, engine: GameEngine = Depends(get_engine)):
    try:
        added = await engine.add_players([entry.model_dump() for entry in body.players])
        return [p.model_dump(mode="json") for p in added]
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error adding players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding players: {str(e)}")


@router.patch("/api/players/{player_id}")
async def update_player(player_id: str, body: UpdatePlayerRequest, engine: GameEngine = Depends(get_engine)):
    """Edit name, rank or gender."""
    try:
        await engine.update_player(player_id, **body.model_dump(exclude_unset=True))
        return engine.state.get_player(player_id).model_dump(mode="json")
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error updating player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating player: {str(e)}")


@router.delete("/api/players/{player_id}")
async def delete_player(player_id: str, engine: GameEngine = Depends(get_engine)):
    try:
        await engine.delete_player(player_id)
        return {"success": True}
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting player: {str(e)}")


@router.post("/api/players/delete")
async def delete_players(body: DeletePlayersRequest, engine: GameEngine = Depends(get_engine)):
    """Bulk delete."""
    try:
        await engine.delete_players(body.player_ids)
        return {"success": True, "deleted": len(body.player_ids)}
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting players: {str(e)}")


@router.post("/api/players/state")
async def set_player_state(body: SetPlayerStateRequest, engine: GameEngine = Depends(get_engine)):
    """Move participants between waiting, priority and resting."""
    try:
        await engine.set_player_state(body.player_ids, body.state)
        return state_response(engine)
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error changing player state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error changing player state: {str(e)}")


@router.post("/api/players/{player_id}/game-count")
async def adjust_game_count(
    player_id: str, body: AdjustGameCountRequest, engine: GameEngine = Depends(get_engine)
):
    try:
        await engine.adjust_game_count(player_id, body.delta)
        return engine.state.get_player(player_id).model_dump(mode="json")
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error adjusting game count for {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adjusting game count: {str(e)}")
