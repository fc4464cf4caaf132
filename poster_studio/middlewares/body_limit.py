from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("poster_studio.body_limit")

DEFAULT_MAX_BODY_BYTES = 40 * 1024 * 1024


class BodyLimitMiddleware(BaseHTTPMiddleware):
    """Reject API request bodies larger than ``max_body_bytes`` with HTTP 413.

    Poster requests legitimately carry several data-URI images, so only the
    overall size is bounded. A limit of zero or less disables the check.
    """

    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(self, app, *, max_body_bytes: int | None = None, **_: Any) -> None:  # type: ignore[override]
        if max_body_bytes is None:
            max_body_bytes = DEFAULT_MAX_BODY_BYTES
        self.max_body_bytes = max_body_bytes if max_body_bytes > 0 else None
        super().__init__(app)

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_body_bytes is None:
            return False
        if content_length and content_length > self.max_body_bytes:
            return True
        return body_len > self.max_body_bytes

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in self.WATCH_PATH_PREFIXES):
            return await call_next(request)

        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except (TypeError, ValueError):
            content_length = None

        if self.max_body_bytes is not None and content_length and content_length > self.max_body_bytes:
            logger.warning(
                "[body-limit] rid=%s path=%s rejected content-length=%s limit=%s",
                rid,
                path,
                content_length,
                self.max_body_bytes,
            )
            return self._reject(content_length)

        body = await request.body()
        if self._too_large(content_length, len(body)):
            logger.warning(
                "[body-limit] rid=%s path=%s rejected size=%s limit=%s",
                rid,
                path,
                len(body),
                self.max_body_bytes,
            )
            return self._reject(len(body))

        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(Request(request.scope, receive))
        logger.debug(
            "[body-limit] rid=%s path=%s size=%s status=%s dur_ms=%s",
            rid,
            path,
            len(body),
            response.status_code,
            int((time.time() - start) * 1000),
        )
        return response

    def _reject(self, size: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": "REQUEST_BODY_TOO_LARGE",
                "size": size,
                "limit": self.max_body_bytes,
            },
        )


__all__ = ["BodyLimitMiddleware", "DEFAULT_MAX_BODY_BYTES"]
