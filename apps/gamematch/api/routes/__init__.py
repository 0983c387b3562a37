"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, engine dependency, error mapping) lives here;
every sub-router imports what it needs from this package.
"""

import logging
import os

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from gamematch.services.errors import GameMatchError, NotFoundError
from gamematch.services.game_engine import GameEngine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
def get_engine(request: Request) -> GameEngine:
    """The engine built at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Game engine is not ready")
    return engine


def domain_error(e: GameMatchError) -> HTTPException:
    """Map a rejected engine operation to an HTTP error."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def state_response(engine: GameEngine) -> dict:
    return engine.state.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from gamematch.api.routes.session import router as session_router  # noqa: E402
from gamematch.api.routes.players import router as players_router  # noqa: E402
from gamematch.api.routes.members import router as members_router  # noqa: E402
from gamematch.api.routes.teams import router as teams_router  # noqa: E402
from gamematch.api.routes.games import router as games_router  # noqa: E402
from gamematch.api.routes.courts import router as courts_router  # noqa: E402
from gamematch.api.routes.roles import router as roles_router  # noqa: E402

router = APIRouter()
router.include_router(session_router)
router.include_router(players_router)
router.include_router(members_router)
router.include_router(teams_router)
router.include_router(games_router)
router.include_router(courts_router)
router.include_router(roles_router)
