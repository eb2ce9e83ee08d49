from __future__ import annotations

import logging
import time
from typing import Callable, Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("privpref.api")

REQUEST_ID_HEADER = "X-Request-ID"


def _usable_request_id(rid: Optional[str], max_len: int) -> bool:
    return bool(rid) and len(rid) <= max_len and rid.isascii() and rid.isprintable()


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """Assign each request a trace id and emit one structured access record.

    The id is stored on request.state.request_id, echoed in X-Request-ID and
    reused by /evaluate as the trace id of the verdict.

    Security notes:
    - A client-supplied id is kept only if it is short and printable ASCII.
    - Request bodies carry user preferences and are never logged.
    - Server errors are logged at WARNING so they surface without DEBUG.

    """

    def __init__(self, app, *, max_id_len: int = 128):
        super().__init__(app)
        self._max_id_len = max_id_len

    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get(REQUEST_ID_HEADER)
        if not _usable_request_id(rid, self._max_id_len):
            rid = uuid4().hex
        request.state.request_id = rid

        started = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            status = response.status_code if response is not None else 500
            log.log(
                logging.WARNING if status >= 500 else logging.INFO,
                "api_request",
                extra={
                    "request_id": rid,
                    "caller_id": getattr(request.state, "caller_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status,
                    "duration_ms": round((time.perf_counter() - started) * 1000.0, 3),
                },
            )
