from __future__ import annotations

from collections import deque
from typing import AsyncIterator, Deque, Dict, Optional

import structlog
from fastapi import status
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect, Request

from csv_relay.core.exceptions import (
    InvalidUploadRequest,
    MissingFilePartError,
    SourceReadError,
)

__all__: list[str] = ["multipart_boundary", "multipart_file_chunks"]

logger = structlog.get_logger(__name__)

MULTIPART_FORM_DATA: bytes = b"multipart/form-data"


def multipart_boundary(content_type: Optional[str]) -> bytes:
    """Return the boundary of a ``multipart/form-data`` content type.

    Raises:
        InvalidUploadRequest: 415 for any other media type, 400 when the
            boundary parameter is missing.
    """
    media_type, options = parse_options_header(content_type or "")
    if media_type.lower() != MULTIPART_FORM_DATA:
        raise InvalidUploadRequest(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            "Content type must be multipart/form-data",
        )
    boundary = options.get(b"boundary")
    if not boundary:
        raise InvalidUploadRequest(
            status.HTTP_400_BAD_REQUEST,
            "Multipart content type is missing its boundary",
        )
    return boundary


class _FilePartCollector:
    """Parser callbacks that keep the data of the first part named *field_name*."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        self.pending: Deque[bytes] = deque()
        self.filename: Optional[str] = None
        self.target_seen: bool = False
        self.target_done: bool = False
        self._in_target: bool = False
        self._headers: Dict[bytes, bytes] = {}
        self._header_field: bytes = b""
        self._header_value: bytes = b""

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        disposition = self._headers.get(b"content-disposition")
        _, options = parse_options_header(disposition or b"")
        name = options.get(b"name", b"").decode("utf-8", errors="replace")

        self._in_target = not self.target_seen and name == self.field_name
        if self._in_target:
            self.target_seen = True
            raw_filename = options.get(b"filename")
            self.filename = (
                raw_filename.decode("utf-8", errors="replace")
                if raw_filename is not None
                else None
            )
            logger.debug(
                "upload_file_part_started",
                field=self.field_name,
                filename=self.filename,
                content_type=self._headers.get(b"content-type", b"").decode(
                    "latin-1"
                ),
            )

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_target:
            self.pending.append(bytes(data[start:end]))

    def on_part_end(self) -> None:
        if self._in_target:
            self._in_target = False
            self.target_done = True


def multipart_file_chunks(
    request: Request, field_name: str = "file"
) -> AsyncIterator[bytes]:
    """Expose one part of a ``multipart/form-data`` request as a chunk source.

    The body is fed to :class:`python_multipart.multipart.MultipartParser` one
    ASGI message at a time; the data of the first part whose
    ``Content-Disposition`` name is *field_name* is yielded as soon as the
    parser produces it. Nothing is spooled: at most one body message worth of
    part data is held between two pulls. Reading stops when that part ends.

    The content type is checked eagerly, before any body byte is read.

    Raises:
        InvalidUploadRequest: Immediately, for a non-multipart content type.
        MissingFilePartError: While iterating, when the body completes without
            the requested part.
        SourceReadError: While iterating, on malformed framing, a truncated
            body or a client disconnect.
    """
    boundary = multipart_boundary(request.headers.get("content-type"))
    return _iter_file_part(request, boundary, field_name)


async def _iter_file_part(
    request: Request, boundary: bytes, field_name: str
) -> AsyncIterator[bytes]:
    collector = _FilePartCollector(field_name)
    parser = MultipartParser(boundary, collector.callbacks())
    body = request.stream()
    try:
        async for message in body:
            try:
                parser.write(message)
            except MultipartParseError as exc:
                raise SourceReadError(f"Malformed multipart body: {exc}") from exc

            while collector.pending:
                yield collector.pending.popleft()

            if collector.target_done:
                return
    except ClientDisconnect as exc:
        raise SourceReadError("Client disconnected during upload") from exc
    finally:
        collector.pending.clear()
        await body.aclose()

    if not collector.target_seen:
        raise MissingFilePartError(field_name)
    raise SourceReadError("Upload ended before the file part was complete")
