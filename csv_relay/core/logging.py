from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any

# structlog must be imported before its typing helpers
import structlog
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.types import Processor

__all__: list[str] = [
    "configure_logging",
    "RequestLoggingMiddleware",
]


def _ensure_request_context(
    logger: Any,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Guarantee *request_id* and *path* keys exist in *event_dict*."""

    event_dict.setdefault("request_id", None)
    event_dict.setdefault("path", None)
    return event_dict


_JSON_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    _ensure_request_context,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def _configure_stdlib_logging(level: int) -> None:
    """Configure the built-in *logging* module to write to *stderr*.

    Uvicorn and Starlette still log through stdlib logging. A single
    **StreamHandler** with a bare formatter keeps their records on the same
    stream as the structlog JSON lines.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))  # structlog formats

    root_logger.handlers.clear()
    root_logger.addHandler(handler)


_LOGGING_CONFIGURED: bool = False


def configure_logging(debug: bool = False) -> None:
    """Initialise `structlog` for the entire process.

    Call **exactly once** and *before* any loggers are used. The function is
    idempotent – multiple calls are safe but no-op after the first.

    Parameters
    ----------
    debug:
        When *True* lowers the log level to ``DEBUG``; otherwise ``INFO``.
        ``DEBUG`` additionally emits one event per relayed chunk.
    """

    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED:
        return

    level: int = logging.DEBUG if debug else logging.INFO

    _configure_stdlib_logging(level)

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=_JSON_PROCESSORS,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _LOGGING_CONFIGURED = True


class RequestLoggingMiddleware:
    """Log each HTTP request with structured details and latency.

    Written as a plain ASGI middleware rather than on top of
    ``BaseHTTPMiddleware``: the upload route reads the request body while its
    streamed response is already being sent, and the base class re-routes both
    ``receive`` and the response body through its own task group. Here both
    channels pass straight through; only ``http.response.start`` is touched to
    attach ``X-Request-ID``.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start: float = time.perf_counter()
        request_id: str = Headers(scope=scope).get("x-request-id") or uuid.uuid4().hex

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=scope.get("path"),
            method=scope.get("method"),
        )

        status_code: int = 500
        streamed: bool = False

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code, streamed
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message.setdefault("headers", [])
                response_headers = MutableHeaders(scope=message)
                response_headers["X-Request-ID"] = request_id
            elif message["type"] == "http.response.body" and message.get(
                "more_body", False
            ):
                streamed = True
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            duration_ms: float = (time.perf_counter() - start) * 1000
            logger = structlog.get_logger("http")
            logger.info(
                "request_completed",
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                streamed=streamed,
            )
            structlog.contextvars.clear_contextvars()
