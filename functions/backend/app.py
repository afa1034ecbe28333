"""
FastAPI application entry point for the site backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from backend.config import get_settings
from backend.dependencies import get_site_context
from backend.routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load events and sermons once at startup instead of on first request.
    get_site_context()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Kalk Bay Church Site", version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "backend.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
