"""Club roster route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from gamematch.api.routes import domain_error, get_engine
from gamematch.models.schemas import (
    AddMemberRequest,
    AddMembersRequest,
    MembersToPlayersRequest,
    UpdateMemberRequest,
)
from gamematch.services.errors import GameMatchError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/members")
async def list_members(engine: GameEngine = Depends(get_engine)):
    return [m.model_dump(mode="json") for m in engine.state.members]


@router.post("/api/members")
async def add_member(body: AddMemberRequest, engine: GameEngine = Depends(get_engine)):
    try:
        member = await engine.add_member(body.name, rank=body.rank, gender=body.gender)
        return member.model_dump(mode="json")
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error adding member: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding member: {str(e)}")


@router.post("/api/members/batch")
async def add_members(body: AddMembersRequest, engine: GameEngine = Depends(get_engine)):
    try:
        added = await engine.add_members([entry.model_dump() for entry in body.members])
        return [m.model_dump(mode="json") for m in added]
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error adding members: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding members: {str(e)}")


@router.post("/api/members/reset")
async def reset_members(body: AddMembersRequest, engine: GameEngine = Depends(get_engine)):
    """Replace the whole roster with ``members`` (empty clears it)."""
    try:
        members = await engine.reset_members([entry.model_dump() for entry in body.members])
        return [m.model_dump(mode="json") for m in members]
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error resetting members: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error resetting members: {str(e)}")


@router.post("/api/members/to-players")
async def add_players_from_members(body: MembersToPlayersRequest, engine: GameEngine = Depends(get_engine)):
    """Add roster members to the session as waiting participants."""
    try:
        added = await engine.add_players_from_members(body.member_ids)
        return [p.model_dump(mode="json") for p in added]
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error adding members as players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding members as players: {str(e)}")


@router.patch("/api/members/{member_id}")
async def update_member(member_id: str, body: UpdateMemberRequest, engine: GameEngine = Depends(get_engine)):
    try:
        await engine.update_member(member_id, **body.model_dump(exclude_unset=True))
        return engine.state.get_member(member_id).model_dump(mode="json")
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error updating member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating member: {str(e)}")


@router.delete("/api/members/{member_id}")
async def delete_member(member_id: str, engine: GameEngine = Depends(get_engine)):
    try:
        await engine.delete_member(member_id)
        return {"success": True}
    except GameMatchError as e:
        raise domain_error(e)
    except Exception as e:
        logger.error(f"Error deleting member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting member: {str(e)}")
