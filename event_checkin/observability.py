from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp
from fastapi import HTTPException

from .config import get_settings
from .errors import CheckinError


def configure_logging() -> None:
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


ERROR_CODE_HEADER = "X-Error-Code"


class RequestTimingLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that measures request processing time and logs concise request/response info.

    Adds an 'X-Process-Time-Ms' header on responses. Service rejections carry their
    error code in 'X-Error-Code', which is logged alongside the status.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Process-Time-Ms"] = str(duration_ms)

        client_ip = request.client.host if request.client else "?"
        error_code = response.headers.get(ERROR_CODE_HEADER)
        log = self.logger.warning if response.status_code >= 500 else self.logger.info
        log(
            "method=%s path=%s status=%s code=%s duration_ms=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            error_code or "-",
            duration_ms,
            client_ip,
        )
        return response


def _error_payload(status: int, message: str, path: str, code: Optional[str] = None) -> dict:
    error = {"status": status, "message": message, "path": path}
    if code:
        error["code"] = code
    return {"ok": False, "error": error}


def add_exception_handlers(app: FastAPI) -> None:
    """Register consistent error payload shapes for HTTP, service and generic exceptions."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else ""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(exc.status_code, message, request.url.path),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(CheckinError)
    async def checkin_error_handler(request: Request, exc: CheckinError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(exc.status_code, exc.message, request.url.path, exc.error_code),
            headers={ERROR_CODE_HEADER: exc.error_code},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Do not leak internals
        logging.getLogger("error").exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content=_error_payload(500, "Internal server error", request.url.path))
