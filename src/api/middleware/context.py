# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request context middleware.

Binds a request ID and the caller identity forwarded by the gateway to
the structlog context, so every log line of a request carries them.

Example:
    GET /api/v1/quota/summary
    X-Request-Id: 7f0c...
    X-Principal-Id: teacher-1
    X-Organization-Id: school-1
"""

import logging
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware binding request-scoped logging context.

    The request ID is taken from ``X-Request-Id`` when present, generated
    otherwise, and echoed on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        clear_context()
        bind_context(
            request_id=request_id,
            principal_id=request.headers.get("X-Principal-Id"),
            organization_id=request.headers.get("X-Organization-Id"),
        )
        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
