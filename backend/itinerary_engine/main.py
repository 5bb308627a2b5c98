"""FastAPI application - itinerary chat, validation and remediation."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.itinerary_engine.api.routes.health import router as health_router
from backend.itinerary_engine.api.routes.itinerary import router as itinerary_router
from backend.itinerary_engine.api.routes.metrics import router as metrics_router
from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.execution.chat import ItineraryChatService
from backend.itinerary_engine.execution.session import SessionStore
from backend.itinerary_engine.llm.client import get_llm_client

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app; each app instance owns its own session store."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        llm_client = await get_llm_client(settings)
        store = SessionStore(settings=settings)
        app.state.session_store = store
        app.state.chat_service = ItineraryChatService(
            store, llm_client=llm_client, settings=settings
        )
        logger.info("Itinerary engine started")
        yield
        logger.info(f"Itinerary engine stopping with {len(store)} live session(s)")

    app = FastAPI(title="Itinerary Engine API", version=VERSION, lifespan=lifespan)

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(itinerary_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Itinerary Engine API", "version": VERSION}

    return app


app = create_app()
