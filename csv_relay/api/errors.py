from __future__ import annotations

from http import HTTPStatus

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from csv_relay.core.exceptions import InvalidUploadRequest

__all__: list[str] = ["add_exception_handlers"]

logger = structlog.get_logger("errors")


def _plain_text_error(
    status_code: int,
    message: str,
    request: Request,
) -> PlainTextResponse:
    """Return a one-line ``text/plain`` error body.

    Parameters
    ----------
    status_code:
        HTTP status of the response.
    message:
        Human-readable description (English, sentence-cased).
    request:
        The failing request; its ``x-request-id`` header is echoed back.
    """

    response = PlainTextResponse(message, status_code=status_code)
    request_id = request.headers.get("x-request-id")
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


async def _http_exception_handler(
    request: Request,
    exc: Exception,
) -> PlainTextResponse:
    """Handle exceptions explicitly raised by the application/routers."""

    status_code = getattr(exc, "status_code", HTTPStatus.INTERNAL_SERVER_ERROR)
    detail = str(getattr(exc, "detail", exc))

    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=status_code,
        detail=detail,
    )
    response = _plain_text_error(status_code, detail, request)
    headers = getattr(exc, "headers", None)
    if headers:
        response.headers.update(headers)
    return response


async def _invalid_upload_handler(
    request: Request,
    exc: Exception,
) -> PlainTextResponse:
    """Handle requests that could not carry an upload (415, missing part)."""

    status_code = getattr(exc, "status_code", status.HTTP_400_BAD_REQUEST)
    detail = str(getattr(exc, "detail", exc))

    logger.warning(
        "invalid_upload_request",
        path=request.url.path,
        status_code=status_code,
        detail=detail,
    )
    return _plain_text_error(status_code, detail, request)


async def _validation_error_handler(
    request: Request,
    exc: Exception,
) -> PlainTextResponse:
    """Handle query/path parameter validation failures (422)."""

    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=errors,
    )
    return _plain_text_error(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid request parameters.",
        request,
    )


async def _unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> PlainTextResponse:  # noqa: D401 – FastAPI handler sig
    """Catch-all for unexpected errors – returns HTTP 500."""

    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
    )
    return _plain_text_error(
        HTTPStatus.INTERNAL_SERVER_ERROR,  # 500
        "An unexpected error occurred.",
        request,
    )


def add_exception_handlers(app: FastAPI) -> None:  # noqa: D401 – imperative
    """Register all global exception handlers on **app**."""

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(InvalidUploadRequest, _invalid_upload_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
