"""Render rate limiting errors as JSON responses.

Body shape: ``{"error": {"code", "message", "request_id", "details"?}}``.
The status and headers come from the error itself.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from window_limiter.core.errors import RateLimitError
from window_limiter.core.logging import get_request_id

logger = logging.getLogger(__name__)


async def rate_limit_error_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    logger.debug(
        "rate_limit.error_response",
        extra={"error_code": exc.code, "status_code": exc.status_code, "path": request.url.path},
    )

    error = {"code": exc.code, "message": exc.message, "request_id": get_request_id()}
    if exc.details:
        error["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error},
        headers=exc.headers or None,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitError, rate_limit_error_handler)
