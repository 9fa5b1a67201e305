"""csv_relay/api/responses.py
###############################################################################
Response assembly for the upload route.
###############################################################################
Maps a :class:`~csv_relay.ingestion.pipeline.PipelineOutcome` onto an HTTP
response:

=========================  ======  ===========================================
Outcome                    Status  Body
=========================  ======  ===========================================
rejected (content)         400     ``Invalid CSV format: first <k> bytes ...``
empty                      400     ``Empty file``
error                      400     ``Error processing file: <cause>``
accepted                   200     the upload itself, chunked
=========================  ======  ===========================================
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import status
from starlette.responses import PlainTextResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from csv_relay.ingestion.pipeline import PeekReplayPipeline, PipelineOutcome

__all__: list[str] = ["RelayResponse", "build_upload_response"]

logger = structlog.get_logger(__name__)

TEXT_PLAIN: str = "text/plain"


class RelayResponse(StreamingResponse):
    """A streaming response that leaves the ASGI ``receive`` channel alone.

    :class:`StreamingResponse` normally spawns a task that drains ``receive``
    looking for ``http.disconnect`` while the body is sent. The relay body is
    itself still being pulled from ``receive`` at that point, so a second
    reader would steal request chunks. Here the body iterator is the only
    reader: a disconnect shows up there (as a read failure) or as an
    ``OSError`` from ``send``.

    A read failure after the status line went out cannot become a 400 any
    more. It is logged and the final body message is withheld, so the server
    ends the chunked transfer abruptly and the client sees a truncated body
    instead of a complete one.

    The body iterator is always closed before returning, and *release* (when
    given) is awaited afterwards. A generator closed before its first step
    never runs its own cleanup, so *release* covers a send that fails on the
    very first message.
    """

    def __init__(
        self,
        content: Any,
        *args: Any,
        release: Optional[Callable[[], Awaitable[None]]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(content, *args, **kwargs)
        self._release = release

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await self.stream_response(send)
        except OSError as exc:
            logger.info("upload_client_disconnected", error=str(exc))
            return
        except Exception as exc:
            logger.warning(
                "upload_response_truncated",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        finally:
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()
            if self._release is not None:
                await self._release()

        if self.background is not None:
            await self.background()


def build_upload_response(
    outcome: PipelineOutcome, pipeline: PeekReplayPipeline
) -> Response:
    """Return the response for *outcome*; accepted uploads stream from *pipeline*."""

    if outcome.accepted:
        return RelayResponse(
            pipeline.stream(),
            status_code=status.HTTP_200_OK,
            media_type=TEXT_PLAIN,
            release=pipeline.aclose,
        )

    return PlainTextResponse(
        outcome.reason or "",
        status_code=status.HTTP_400_BAD_REQUEST,
    )
