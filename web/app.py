"""
FastAPI application for the land listing moderation API.

Production deployment configuration via environment variables (see
utils.config.Config).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.moderation import ModerationError
from utils.config import Config
from web.admin_routes import router as admin_router
from web.listing_routes import router as listing_router


logger = logging.getLogger(__name__)


# =============================================================================
# Error Handlers
# =============================================================================


async def moderation_error_handler(request: Request, exc: ModerationError) -> JSONResponse:
    """Map domain errors to their HTTP status with a plain-English body."""
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are a 400, with errors keyed by field."""
    errors: dict = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        name = ".".join(location) or "body"
        errors.setdefault(name, []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=400,
        content={
            "status": "error",
            "code": "INVALID_ARGUMENT",
            "message": "Request is invalid",
            "errors": errors,
        },
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or Config.load()
    production = not config.debug

    app = FastAPI(
        title="Land Listing Moderation",
        description="Listing moderation and trust-badge API",
        version="0.1.0",
        docs_url=None if production else "/docs",
        redoc_url=None if production else "/redoc",
        openapi_url=None if production else "/openapi.json",
        debug=config.debug,
    )
    app.state.config = config

    # Healthchecks first; no dependencies, no IO.
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {"status": "healthy"}

    if config.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    app.add_exception_handler(ModerationError, moderation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.on_event("startup")
    def on_startup():
        logger.info(
            "Land listing moderation API started (store: %s, debug: %s)",
            config.resolved_store_path,
            config.debug,
        )

    app.include_router(admin_router)
    app.include_router(listing_router)

    return app


app = create_app()
