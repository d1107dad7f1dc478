from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from window_limiter.core.config import settings
from window_limiter.core.rate_limit import get_counter_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint.

    Reports whether the shared counter store answers a ping. Used by load
    balancers and monitoring systems: 200 when the store is reachable,
    503 otherwise.
    """

    backend = settings.store.backend
    try:
        reachable = await run_in_threadpool(get_counter_store().ping)
    except Exception as exc:
        logger.warning(
            "health.store_unreachable",
            extra={"backend": backend, "error_type": type(exc).__name__},
        )
        reachable = False

    if reachable:
        return JSONResponse({"status": "ok", "store": backend})
    return JSONResponse({"status": "degraded", "store": backend}, status_code=503)
