"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storyrelay.api.game import router as game_router
from storyrelay.api.health import router as health_router
from storyrelay.api.ws import router as ws_router
from storyrelay.config import settings
from storyrelay.core.errors import InvalidRequestError, StoryRelayError
from storyrelay.core.logging import get_logger, setup_logging
from storyrelay.core.session_locks import SessionLocks
from storyrelay.db.database import SessionLocal
from storyrelay.services.ai import get_ai_provider, get_opening_provider
from storyrelay.services.broadcast import BroadcastChannel
from storyrelay.services.identity import TrustedTokenResolver
from storyrelay.services.image_service import get_image_service
from storyrelay.services.narrative_service import NarrativeService
from storyrelay.services.narrative_types import NarrativeConfig
from storyrelay.services.presence import PresenceRegistry
from storyrelay.services.session_store import SessionStore
from storyrelay.services.turn_coordinator import CoordinatorConfig, TurnCoordinator

setup_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events.

    Services already placed on ``app.state`` (tests do this) are kept.
    """
    state = app.state

    # Session Store
    if getattr(state, "store", None) is None:
        logger.info("Creating database tables...")
        state.store = SessionStore(SessionLocal)
        state.store.create_schema()
        logger.info("Database tables created.")

    # Presence / Broadcast
    if getattr(state, "presence", None) is None:
        state.presence = PresenceRegistry()
    if getattr(state, "broadcast", None) is None:
        state.broadcast = BroadcastChannel(state.presence)

    if getattr(state, "identity", None) is None:
        logger.warning("Using TrustedTokenResolver: bearer tokens are taken as user ids")
        state.identity = TrustedTokenResolver()

    # AI Provider, NarrativeService, TurnCoordinator
    if getattr(state, "coordinator", None) is None:
        logger.info("Initializing AI provider...")
        ai_provider = get_ai_provider()
        narrative_service = NarrativeService(
            ai_provider,
            NarrativeConfig(
                timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
                max_attempts=settings.GENERATION_MAX_ATTEMPTS,
                backoff_seconds=settings.GENERATION_BACKOFF_SECONDS,
            ),
            opening_provider=get_opening_provider(),
        )
        logger.info("AI provider initialized: %s", ai_provider.name)

        image_service = get_image_service()
        logger.info("Image service initialized: %s", image_service.name)

        coordinator_config = CoordinatorConfig.from_settings()
        state.coordinator = TurnCoordinator(
            store=state.store,
            narrative=narrative_service,
            images=image_service,
            presence=state.presence,
            broadcast=state.broadcast,
            locks=SessionLocks(),
            config=coordinator_config,
        )
        logger.info(
            "TurnCoordinator initialized (stale turn policy: %s).",
            coordinator_config.stale_turn_policy.value,
        )

    yield

    logger.info("Shutting down...")


# === 에러 핸들러 ===


async def storyrelay_error_handler(request: Request, exc: StoryRelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = InvalidRequestError(
        "Invalid request body.", {"errors": jsonable_encoder(exc.errors())}
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = StoryRelayError("Internal server error.").to_dict()
    return JSONResponse(status_code=500, content=body)


def create_app() -> FastAPI:
    app = FastAPI(title="StoryRelay", lifespan=lifespan)

    app.add_exception_handler(StoryRelayError, storyrelay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health_router)
    app.include_router(game_router)
    app.include_router(ws_router)
    return app


app = create_app()
