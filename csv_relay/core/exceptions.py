"""
Core Custom Exceptions

This module defines the domain-specific exceptions used by the relay service.
Content rejections are *not* exceptions: the validator and the pipeline return
them as values (see :mod:`csv_relay.ingestion.validators` and
:mod:`csv_relay.ingestion.pipeline`). Exceptions are reserved for conditions
where the byte source itself cannot be trusted any more, or where the request
never described an upload in the first place.

Defined Exceptions:
- `RelayError`: Base class for every error raised by this package.
- `SourceError`: Raised by a chunk source when it cannot deliver chunks.
- `SourceReadError`: The transport or the multipart framing failed mid-read.
- `InvalidUploadRequest`: The request cannot carry an upload at all (wrong
  content type, missing boundary). Carries the HTTP status to answer with.
- `MissingFilePartError`: The body completed without the expected file part.
"""

from __future__ import annotations

__all__: list[str] = [
    "RelayError",
    "SourceError",
    "SourceReadError",
    "MissingFilePartError",
    "InvalidUploadRequest",
]


class RelayError(Exception):
    """Base class for errors raised by the upload relay."""

    pass


class SourceError(RelayError):
    """Raised when a chunk source cannot keep delivering chunks."""

    pass


class SourceReadError(SourceError):
    """Raised when the underlying transport fails while delivering chunks.

    The message is surfaced verbatim to the client as
    ``Error processing file: <message>`` when the failure happens before the
    response has started.
    """

    pass


class InvalidUploadRequest(RelayError):
    """Raised when the request cannot carry an upload at all."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


class MissingFilePartError(InvalidUploadRequest):
    """Raised when the multipart body completes without the expected part."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(400, f"Required part '{field_name}' is not present.")
