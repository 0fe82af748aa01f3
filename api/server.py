"""FastAPI server for the finance assistant.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import chat, health, tools, voice_agent
from core.config import AppSettings, get_settings
from core.observability.logging import configure_logging, get_logger
from storage.db import Datastore


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: AppSettings = app.state.settings
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    logger.info("Finance assistant API starting up", extra_fields={"db_path": str(settings.db_path)})

    yield

    logger.info("Finance assistant API shutting down")


def create_app(
    settings: Optional[AppSettings] = None,
    store: Optional[Datastore] = None,
    email_client: Any = None,
    chat_client: Any = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Finance Assistant API",
        description="Tool-calling core for a conversational finance assistant (chat and voice)",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.store = store
    app.state.email_client = email_client
    app.state.chat_client = chat_client
    app.state.dispatcher = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(tools.router, prefix="/tools", tags=["Tools"])
    app.include_router(voice_agent.router, prefix="/voice-agent", tags=["Voice"])
    app.include_router(chat.router, prefix="/chat", tags=["Chat"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
