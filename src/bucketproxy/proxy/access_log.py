"""Access logging around the proxy pipeline."""

from __future__ import annotations

import contextlib
import time
from typing import Optional

import structlog
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

LOGGER = structlog.get_logger("bucketproxy.access")


def client_address(scope: Scope) -> str:
    """Prefer the first ``X-Forwarded-For`` entry over the transport peer."""

    forwarded = Headers(scope=scope).get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client = scope.get("client")
    if client:
        host, port = client[0], client[1]
        return f"{host}:{port}"
    return "unknown"


def request_url(scope: Scope) -> str:
    path = scope.get("raw_path") or scope.get("path", "").encode("utf-8")
    if isinstance(path, bytes):
        path = path.decode("latin-1")
    path = path.split("?", 1)[0]
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


class StatusRecorder:
    """Wraps an ASGI ``send`` and remembers the first response status sent."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status: Optional[int] = None

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start" and self.status is None:
            self.status = int(message["status"])
        await self._send(message)


class AccessLogMiddleware:
    """Emits one ``access`` event per HTTP request once the response completes."""

    def __init__(self, app: ASGIApp, verbose: bool = False) -> None:
        self.app = app
        self.verbose = verbose

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        recorder = StatusRecorder(send)
        try:
            await self.app(scope, receive, recorder)
        except Exception:
            if recorder.status is None:
                recorder.status = 500
            raise
        finally:
            if self.verbose:
                self._emit(scope, recorder.status or 200, time.perf_counter() - start)

    def _emit(self, scope: Scope, status: int, elapsed: float) -> None:
        with contextlib.suppress(Exception):
            LOGGER.info(
                "access",
                client=client_address(scope),
                elapsed=round(elapsed, 3),
                status=status,
                method=scope.get("method", ""),
                url=request_url(scope),
            )
