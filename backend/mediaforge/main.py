"""mediaforge: FastAPI application entry point.

Mounts the generation and model routes and owns the shared HTTP client.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mediaforge.api.router import api_router
from mediaforge.config import get_settings
from mediaforge.services.transport import close_http_client

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: close the pooled HTTP client on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    if not settings.FAL_API_KEY:
        logger.warning("FAL_API_KEY not set: seedream, kling and wan will be rejected")
    if not settings.GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY not set: nanobanana-pro and veo will be rejected")

    yield

    await close_http_client()
    logger.info("%s shut down", settings.APP_NAME)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
