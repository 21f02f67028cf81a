"""
DUPA Estimator API
FastAPI backend: DUPA template instantiation, project BOQ maintenance and
indirect-cost summaries over async PostgreSQL (or in-memory in dev mode).
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dupa_estimator import config
from dupa_estimator.api.deps import Repositories, build_repositories
from dupa_estimator.db import database_configured, init_db
from dupa_estimator.services.logging_config import setup_logging
from dupa_estimator.services.middleware import RequestTimingMiddleware

setup_logging(level=config.LOG_LEVEL, json_output=config.LOG_JSON)
logger = logging.getLogger("dupa-api")

VERSION = "1.0.0"

if not database_configured():
    logger.warning("MISSING env var: DATABASE_URL, running on in-memory storage (dev mode)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    if app.state.repositories is None:
        app.state.repositories = build_repositories()
    logger.info("storage backend: %s", app.state.repositories.storage)
    yield


def create_app(repositories: Optional[Repositories] = None) -> FastAPI:
    app = FastAPI(
        title="DUPA Estimator API",
        version=VERSION,
        description="Unit price analysis and bill of quantities pricing",
        lifespan=lifespan,
    )
    app.state.repositories = repositories

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Request-ID"],
    )
    # Request timing + X-Request-ID must be outermost so it wraps all other middleware
    app.add_middleware(RequestTimingMiddleware)

    from dupa_estimator.api.boq_routes import router as boq_router
    app.include_router(boq_router)

    @app.get("/health")
    async def health_check():
        repos = app.state.repositories
        return {
            "status": "active",
            "version": VERSION,
            "db_configured": database_configured(),
            "storage": repos.storage if repos is not None else None,
        }

    return app


app = create_app()
