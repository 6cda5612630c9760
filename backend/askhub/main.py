"""
AskHub FastAPI Application Entry Point.

Run with: uvicorn askhub.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from askhub.config import get_settings
from askhub.api.routes import (
    auth,
    chat,
    notifications,
    profiles,
    questions,
    realtime,
    votes,
)
from askhub.services.errors import AskHubError, askhub_error_handler, unexpected_error_handler
from askhub.services.realtime import ChangeFeed

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup
    app.state.change_feed = ChangeFeed()
    logger.info("%s started (%s)", settings.app_name, settings.environment)
    yield
    # Shutdown
    app.state.change_feed.close_all()


app = FastAPI(
    title=settings.app_name,
    description="Community Q&A with token-gated chat",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AskHubError, askhub_error_handler)
app.add_exception_handler(Exception, unexpected_error_handler)

# Include routers
app.include_router(auth.router)
app.include_router(profiles.router)
app.include_router(questions.router)
app.include_router(questions.answers_router)
app.include_router(questions.tags_router)
app.include_router(votes.router)
app.include_router(chat.router)
app.include_router(notifications.router)
app.include_router(realtime.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
