from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Final, Optional, Union

import structlog

__all__: list[str] = [
    "Accepted",
    "Rejected",
    "ValidationResult",
    "validate_prefix",
    "rejection_reason",
]

logger = structlog.get_logger(__name__)

# Bytes that are always fine in delimited text: letters, digits, delimiters,
# quotes, whitespace and the punctuation commonly found in CSV cells.
_EXPLICITLY_ALLOWED: Final[frozenset[int]] = frozenset(
    (string.ascii_letters + string.digits + ",;\t\"' \n\r.-_@#()[]/\\:+").encode(
        "ascii"
    )
)

# Control bytes tolerated anywhere in a text file.
_ALLOWED_CONTROL: Final[frozenset[int]] = frozenset({0x09, 0x0A, 0x0D})

_PRINTABLE_MIN: Final[int] = 0x20
_PRINTABLE_MAX: Final[int] = 0x7E


@dataclass(frozen=True)
class Accepted:
    """The inspected prefix looks like delimited text."""


@dataclass(frozen=True)
class Rejected:
    """The inspected prefix contains a disallowed byte.

    Attributes:
        reason: Client-facing, one-line explanation.
        inspected_bytes: Number of bytes handed to the validator.
        offset: Position of the first disallowed byte (logged, never returned
            to the client).
        value: Value of the first disallowed byte.
    """

    reason: str
    inspected_bytes: int
    offset: Optional[int] = None
    value: Optional[int] = None


ValidationResult = Union[Accepted, Rejected]


def rejection_reason(inspected_bytes: int) -> str:
    """Return the client-facing reason for a content rejection."""
    return (
        f"Invalid CSV format: first {inspected_bytes} bytes contain invalid characters"
    )


def _is_disallowed(byte: int) -> bool:
    if byte in _EXPLICITLY_ALLOWED:
        return False
    if byte < _PRINTABLE_MIN:
        return byte not in _ALLOWED_CONTROL
    # Everything above the printable range is binary, DEL included.
    return byte > _PRINTABLE_MAX


def validate_prefix(prefix: bytes) -> ValidationResult:
    """Decide whether *prefix* looks like the start of a delimited text file.

    The check is byte-oriented: the caller concatenates however many chunks
    it needed to collect the prefix, so chunk boundaries never influence the
    outcome. The scan stops at the first disallowed byte.

    Only the bytes passed in are inspected. A file whose first bytes are clean
    is accepted even if binary data follows later.
    """

    inspected = len(prefix)
    for offset, byte in enumerate(prefix):
        if _is_disallowed(byte):
            logger.debug(
                "prefix_invalid_byte",
                offset=offset,
                value=byte,
                inspected_bytes=inspected,
            )
            return Rejected(
                reason=rejection_reason(inspected),
                inspected_bytes=inspected,
                offset=offset,
                value=byte,
            )
    return Accepted()
