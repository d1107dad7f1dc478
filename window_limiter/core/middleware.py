from __future__ import annotations

import uuid

from fastapi import Request, Response

from window_limiter.core.config import settings
from window_limiter.core.logging import bind_request_id, reset_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a correlation id for the request and echo it on the response.

    The id is taken from the configured header when the caller sends one,
    so limiter decisions can be matched to upstream traces.
    """

    header = settings.log.request_id_header
    request_id = request.headers.get(header) or uuid.uuid4().hex
    token = bind_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)

    response.headers[header] = request_id
    return response
