"""
FastAPI application for the Intone governance engine.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.exceptions import GovernanceError, general_exception_handler, governance_exception_handler
from .core.logging import setup_logging
from .dependencies import shutdown_services
from .routers import audits, constraints, health, rewrite, rules
from .services.evaluator_client import close_evaluator_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    app_settings = get_settings()
    logger = structlog.get_logger()

    setup_logging(app_settings.log_level, json_format=app_settings.log_format == "json")
    logger.info("Starting Intone Governance API", version=app.version)

    yield

    await shutdown_services()
    await close_evaluator_client()
    logger.info("Shutting down Intone Governance API")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(GovernanceError, governance_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(rules.router, prefix="/api", tags=["rules"])
    app.include_router(rewrite.router, prefix="/api", tags=["rewrite"])
    app.include_router(audits.router, prefix="/api", tags=["audits"])
    app.include_router(constraints.router, prefix="/api", tags=["constraints"])

    return app


app = create_app()


if __name__ == "__main__":
    app_settings = get_settings()
    uvicorn.run(
        "intone.main:app",
        host=app_settings.host,
        port=app_settings.port,
        reload=app_settings.debug,
        log_level=app_settings.log_level.lower(),
    )
