from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("ipfsadd.devnode")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each add request with an id for the access log and the X-Request-ID reply header.

    A client-supplied id is echoed only if it is a short token of
    [A-Za-z0-9._-]; anything else is replaced with a fresh uuid4 hex.
    """

    def __init__(self, app, *, header_name: str = "X-Request-ID", max_len: int = 64):
        super().__init__(app)
        self._header_name = header_name
        self._token = re.compile(r"[A-Za-z0-9._-]{1,%d}" % max_len)

    async def dispatch(self, request: Request, call_next: Callable):
        supplied = request.headers.get(self._header_name, "")
        rid = supplied if self._token.fullmatch(supplied) else uuid4().hex
        request.state.request_id = rid
        response: Response = await call_next(request)
        response.headers[self._header_name] = rid
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One structured log record per request.

    Upload bodies and part names are never logged; the add handler records
    part and byte counts on request.state.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        start = time.monotonic()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            return response
        finally:
            log.info(
                "devnode_request",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": getattr(response, "status_code", None),
                    "parts": getattr(request.state, "parts", None),
                    "body_bytes": getattr(request.state, "body_bytes", None),
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
