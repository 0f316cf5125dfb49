"""
Request context middleware for log correlation.

- Generates or accepts the X-Request-ID header and echoes it on the response
- Puts the request id and the caller's X-Learner-ID into context vars so
  every log record of the request carries them
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from learnpath.logging_config import get_logger, learner_id_var, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
LEARNER_ID_HEADER = "X-Learner-ID"

SLOW_REQUEST_MS = 1000


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id to each request and log slow requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        request_token = request_id_var.set(request_id)
        learner_token = learner_id_var.set(request.headers.get(LEARNER_ID_HEADER))
        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            response.headers[REQUEST_ID_HEADER] = request_id

            if duration_ms > SLOW_REQUEST_MS:
                logger.warning(
                    "Slow request",
                    extra={
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": round(duration_ms, 1),
                    },
                )
            return response
        finally:
            learner_id_var.reset(learner_token)
            request_id_var.reset(request_token)
