"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from quizarena.auth.router import router as auth_router
from quizarena.competition.router import router as competition_router
from quizarena.config import get_settings
from quizarena.database import close_db, create_all, init_db
from quizarena.health.router import router as health_router
from quizarena.middleware import setup_middleware
from quizarena.quizzes.router import router as quizzes_router
from quizarena.ranking.router import router as leaderboard_router
from quizarena.redis_client import close_redis, init_redis
from quizarena.social.router import router as social_router
from quizarena.users.router import router as users_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    if settings.environment == "development":
        await create_all()

    yield

    await close_db()
    await close_redis()


def create_app(*, with_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    ``with_lifespan=False`` skips connecting to the database and Redis,
    for callers that override ``get_session`` themselves.
    """
    settings = get_settings()

    app = FastAPI(
        title="Quiz Arena API",
        description="Quiz competitions with points, streaks, levels and leaderboards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan if with_lifespan else None,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(quizzes_router)
    app.include_router(leaderboard_router)
    app.include_router(competition_router)
    app.include_router(social_router)

    return app


app = create_app()
