"""FastAPI application entry point.

Startup sequence: load .env → open store → seed platforms → prepare uploads.
"""

import os
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from modelhub.api.admin import router as admin_router
from modelhub.api.routes import router
from modelhub.core.blobs import BlobStore
from modelhub.core.database import ChatStore

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("startup.begin")

    # Tests may pre-seed app.state with their own store/blob directory
    owns_store = getattr(app.state, "store", None) is None
    if owns_store:
        app.state.store = ChatStore()
    created = app.state.store.seed_platforms()
    logger.info("startup.db_initialized", platforms_created=created)

    if getattr(app.state, "blobs", None) is None:
        app.state.blobs = BlobStore()
    logger.info("startup.uploads_ready", path=str(app.state.blobs.root))

    logger.info("startup.complete")
    yield
    if owns_store:
        app.state.store.engine.dispose()
    logger.info("shutdown.complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="modelhub API",
        description="One chat contract over several upstream AI providers",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.include_router(admin_router)
    # BlobStore creates the directory at startup
    uploads_dir = os.environ.get("UPLOADS_DIR", "uploads")
    app.mount("/uploads", StaticFiles(directory=uploads_dir, check_dir=False), name="uploads")
    return app


app = create_app()
