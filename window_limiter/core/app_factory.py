"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
services embedding the limiter get logging, request correlation and error
responses wired the same way. Protected routes opt in with
``Depends(enforce_rate_limit)``.
"""

from __future__ import annotations

from fastapi import FastAPI

from window_limiter.api.routes import health_router
from window_limiter.core.config import settings
from window_limiter.core.exception_handlers import setup_exception_handlers
from window_limiter.core.logging import configure_logging
from window_limiter.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Window Limiter",
        description=(
            "Distributed sliding-window rate limiting backed by a shared "
            "counter store."
        ),
        version="0.1.0",
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)

    return app
