"""
Peek-and-Replay Pipeline

This module holds the upload relay's state machine. It reads just enough of
an upload to validate its first bytes and, when the prefix is accepted, hands
back one async iterator that yields the complete upload: the chunks consumed
while peeking, followed by the untouched remainder of the source.

States::

    AWAITING_FIRST_CHUNK -> VALIDATING -> REJECTING -> DONE
                                       -> REPLAYING -> DONE
    (any state) -> ERROR

Key Responsibilities:
- Pull chunks until the validation window is covered or the source ends.
- Produce exactly one outcome per upload (accepted, rejected, empty, error).
- Replay cached chunks before live ones, each chunk exactly once.
- Release the source on every exit path: rejection, read failure, normal
  completion and consumer cancellation.

Read failures that can still be turned into an HTTP status are returned as
a :class:`PipelineOutcome`, whatever their type; only request-level
:class:`~csv_relay.core.exceptions.RelayError`s and cancellation propagate
from :meth:`PeekReplayPipeline.inspect`. A read failure after relaying has
started cannot become a status any more, so the relay iterator re-raises it.

Dependencies:
- `csv_relay.ingestion.streamers`: the two-reader shareable source.
- `csv_relay.ingestion.validators`: the prefix validator.
- `structlog`: structured logging of every transition that matters.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Optional

import structlog

from csv_relay.core.config import DEFAULT_VALIDATION_BYTES
from csv_relay.core.exceptions import RelayError, SourceError
from csv_relay.core.metrics import RELAYED_BYTES, RELAYS_IN_PROGRESS
from csv_relay.ingestion.streamers import ChunkSource, SharedChunkSource
from csv_relay.ingestion.validators import Rejected, ValidationResult, validate_prefix

__all__: list[str] = [
    "PipelineState",
    "OutcomeKind",
    "PipelineOutcome",
    "PeekReplayPipeline",
    "EMPTY_FILE_REASON",
]

logger = structlog.get_logger(__name__)

EMPTY_FILE_REASON: str = "Empty file"
ERROR_REASON_PREFIX: str = "Error processing file: "


class PipelineState(str, Enum):
    """Lifecycle of a single upload through the pipeline."""

    AWAITING_FIRST_CHUNK = "awaiting_first_chunk"
    VALIDATING = "validating"
    REJECTING = "rejecting"
    REPLAYING = "replaying"
    DONE = "done"
    ERROR = "error"


class OutcomeKind(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineOutcome:
    """
    Terminal decision taken after the prefix has been inspected.

    Attributes:
        kind: Which branch the pipeline took.
        reason: Client-facing text for every kind except ``ACCEPTED``.
        inspected_bytes: Bytes handed to the validator (0 when it never ran).
    """

    kind: OutcomeKind
    reason: Optional[str] = None
    inspected_bytes: int = 0

    @property
    def accepted(self) -> bool:
        return self.kind is OutcomeKind.ACCEPTED


Validator = Callable[[bytes], ValidationResult]


class PeekReplayPipeline:
    """Validate the first bytes of a chunk source, then relay all of it.

    Usage::

        pipeline = PeekReplayPipeline(source, validation_bytes=100)
        outcome = await pipeline.inspect()
        if outcome.accepted:
            async for chunk in pipeline.stream():
                ...
        else:
            ...  # outcome.reason; the source has already been released

    The pipeline is a single sequential consumer: never drive ``inspect`` and
    ``stream`` from two tasks at once.
    """

    def __init__(
        self,
        source: ChunkSource,
        *,
        validation_bytes: int = DEFAULT_VALIDATION_BYTES,
        validator: Validator = validate_prefix,
    ) -> None:
        if validation_bytes <= 0:
            raise ValueError("validation_bytes must be greater than 0")

        self._shared = SharedChunkSource(source)
        self._validation_bytes = validation_bytes
        self._validator = validator
        self._state = PipelineState.AWAITING_FIRST_CHUNK
        self._outcome: Optional[PipelineOutcome] = None
        self._stream_requested: bool = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def outcome(self) -> Optional[PipelineOutcome]:
        return self._outcome

    @property
    def source(self) -> SharedChunkSource:
        """The shareable adapter wrapping the raw source (exposed for tests)."""
        return self._shared

    async def inspect(self) -> PipelineOutcome:
        """Peek at the prefix and decide. Runs once; later calls return the same outcome."""

        if self._outcome is not None:
            return self._outcome
        if self._state is not PipelineState.AWAITING_FIRST_CHUNK:
            raise RuntimeError(f"inspect() not allowed in state {self._state.value}")

        try:
            prefix = await self._shared.capture(self._validation_bytes)
        except SourceError as exc:
            return await self._fail(exc)
        except RelayError:
            # Request-level errors (wrong content type, missing part) keep
            # their own status.
            self._state = PipelineState.ERROR
            await self._shared.release()
            raise
        except Exception as exc:
            return await self._fail(exc)
        except BaseException:
            # Cancellation propagates, but the cached chunks never outlive
            # this frame.
            self._state = PipelineState.ERROR
            await self._shared.release()
            raise

        if not prefix:
            logger.info("upload_empty")
            return await self._reject(
                PipelineOutcome(kind=OutcomeKind.EMPTY, reason=EMPTY_FILE_REASON)
            )

        logger.debug(
            "upload_prefix_captured",
            prefix_bytes=len(prefix),
            cached_bytes=self._shared.cached_bytes,
            chunks_pulled=self._shared.chunks_pulled,
            source_exhausted=self._shared.exhausted,
        )

        self._state = PipelineState.VALIDATING
        result = self._validator(prefix)

        if isinstance(result, Rejected):
            logger.info(
                "upload_rejected",
                inspected_bytes=result.inspected_bytes,
                offset=result.offset,
                value=result.value,
            )
            return await self._reject(
                PipelineOutcome(
                    kind=OutcomeKind.REJECTED,
                    reason=result.reason,
                    inspected_bytes=result.inspected_bytes,
                )
            )

        self._state = PipelineState.REPLAYING
        self._outcome = PipelineOutcome(
            kind=OutcomeKind.ACCEPTED, inspected_bytes=len(prefix)
        )
        return self._outcome

    def stream(self) -> AsyncIterator[bytes]:
        """Return the relay iterator. Only valid once ``inspect`` accepted the upload."""

        if self._state is not PipelineState.REPLAYING:
            raise RuntimeError(f"stream() not allowed in state {self._state.value}")
        if self._stream_requested:
            raise RuntimeError("stream() may only be requested once")
        self._stream_requested = True
        return self._relay(self._shared.replay())

    async def _relay(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        start = time.perf_counter()
        relayed = 0
        logger.info("upload_relay_started")
        RELAYS_IN_PROGRESS.inc()
        try:
            async for chunk in chunks:
                relayed += len(chunk)
                RELAYED_BYTES.inc(len(chunk))
                yield chunk
        except Exception as exc:
            self._state = PipelineState.ERROR
            logger.error(
                "upload_relay_aborted",
                error=str(exc),
                error_type=type(exc).__name__,
                relayed_bytes=relayed,
            )
            raise
        else:
            self._state = PipelineState.DONE
            logger.info(
                "upload_relay_completed",
                relayed_bytes=relayed,
                chunks=self._shared.chunks_pulled,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
        finally:
            if self._state is PipelineState.REPLAYING:
                # Neither completed nor failed: the consumer went away.
                logger.info("upload_client_disconnected", relayed_bytes=relayed)
                self._state = PipelineState.DONE
            RELAYS_IN_PROGRESS.dec()
            await self._shared.release()

    async def aclose(self) -> None:
        """Release the source whatever state the pipeline is in."""
        await self._shared.release()

    async def _reject(self, outcome: PipelineOutcome) -> PipelineOutcome:
        self._state = PipelineState.REJECTING
        await self._shared.release()
        self._state = PipelineState.DONE
        self._outcome = outcome
        return outcome

    async def _fail(self, exc: Exception) -> PipelineOutcome:
        self._state = PipelineState.ERROR
        logger.warning(
            "upload_source_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            bytes_pulled=self._shared.bytes_pulled,
        )
        await self._shared.release()
        self._outcome = PipelineOutcome(
            kind=OutcomeKind.ERROR, reason=f"{ERROR_REASON_PREFIX}{exc}"
        )
        return self._outcome
