"""Role check route handler."""

import logging

from fastapi import APIRouter, Depends, Request

from gamematch.api.routes import get_engine, limiter
from gamematch.models.schemas import RoleCheckRequest, RoleCheckResponse
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/role", response_model=RoleCheckResponse)
@limiter.limit("10/minute")
async def check_role(request: Request, payload: RoleCheckRequest, engine: GameEngine = Depends(get_engine)):
    """Admin on a matching password, viewer otherwise."""
    role = await engine.check_role(payload.password)
    logger.info(f"Role check from {request.client.host if request.client else 'unknown'}: {role.value}")
    return RoleCheckResponse(role=role)
