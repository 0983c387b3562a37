"""
Game Matching API Server

FastAPI server exposing the court rotation engine: participants, balanced
teams, games and court state.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from gamematch.api.routes import router, limiter as routes_limiter
from gamematch.database import db
from gamematch.services.db_store import create_database_store
from gamematch.services.game_engine import GameEngine
from gamematch.utils.constants import ADMIN_PASSWORD

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def build_engine() -> GameEngine:
    """Prepare the store, seed the admin credential and load the session."""
    try:
        await db.init_database()
        logger.info(f"Tables ready on {db.engine.url.render_as_string(hide_password=True)}")
    except Exception as e:
        # Keep serving from local state; every later sync retries the store
        logger.error(f"Could not prepare database tables: {e}", exc_info=True)

    store = create_database_store()
    try:
        if await store.roles.ensure_password(ADMIN_PASSWORD):
            logger.info("Admin password seeded from ADMIN_PASSWORD")
    except Exception as e:
        logger.error(f"Failed to seed admin password: {e}", exc_info=True)

    engine = GameEngine(store)
    await engine.load()
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Game Matching API")
    app.state.engine = await build_engine()
    yield
    logger.info("Stopping Game Matching API")
    await db.engine.dispose()


app = FastAPI(
    title="Game Matching API",
    description="Rotates participants through courts in skill-balanced teams",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Comma-separated list of UI origins
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
