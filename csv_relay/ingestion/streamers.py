from __future__ import annotations

from collections import deque
from typing import AsyncIterable, AsyncIterator, Deque, Optional

import structlog

__all__: list[str] = ["ChunkSource", "SharedChunkSource"]

logger = structlog.get_logger(__name__)

# Anything that yields ``bytes`` chunks once, in order, and then stops.
ChunkSource = AsyncIterable[bytes]


class SharedChunkSource:
    """Let a single-read chunk source be consumed by two readers in sequence.

    The first reader, :meth:`capture`, pulls chunks into an explicit cache
    until a byte watermark is reached. The second reader, :meth:`replay`,
    hands those cached chunks out again (each one exactly once, dropping the
    reference as it goes) and then passes the rest of the source through live.
    The raw source is therefore iterated a single time end to end and no chunk
    is ever requested twice from it.

    Rules enforced at runtime (violations raise :class:`RuntimeError`):

    * ``capture`` runs at most once, ``replay`` at most once and only after
      ``capture`` completed;
    * there is never more than one pull in flight against the raw source;
    * nothing is pulled after :meth:`release`.

    Parameters
    ----------
    source:
        Any async iterable of ``bytes``. Zero-length chunks are skipped.
    """

    def __init__(self, source: ChunkSource) -> None:
        self._iterator: AsyncIterator[bytes] = source.__aiter__()
        self._cache: Deque[bytes] = deque()
        self._cached_bytes: int = 0
        self._capture_started: bool = False
        self._captured: bool = False
        self._replay_started: bool = False
        self._pulling: bool = False
        self._exhausted: bool = False
        self._released: bool = False

        self.chunks_pulled: int = 0
        self.bytes_pulled: int = 0

    @property
    def cached_bytes(self) -> int:
        """Bytes currently held in the cache (not yet replayed or released)."""
        return self._cached_bytes

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def released(self) -> bool:
        return self._released

    async def _pull(self) -> Optional[bytes]:
        """Return the next non-empty chunk from the raw source, or ``None`` at EOF."""

        if self._released:
            raise RuntimeError("chunk source already released")
        if self._pulling:
            raise RuntimeError("concurrent pull on a single-consumer chunk source")

        while not self._exhausted:
            self._pulling = True
            try:
                chunk = await self._iterator.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                return None
            finally:
                self._pulling = False

            if not chunk:
                continue

            self.chunks_pulled += 1
            self.bytes_pulled += len(chunk)
            logger.debug(
                "stream_chunk_read",
                chunk_size=len(chunk),
                total_read=self.bytes_pulled,
            )
            return chunk
        return None

    async def capture(self, limit: int) -> bytes:
        """Cache chunks until at least *limit* bytes are held or the source ends.

        Returns a **copy** of the first ``min(limit, cached_bytes)`` bytes, so
        the caller can inspect it freely while the cached chunks stay intact
        for :meth:`replay`.

        Raises
        ------
        ValueError
            If *limit* is ≤ 0.
        RuntimeError
            If called twice.
        """

        if limit <= 0:
            raise ValueError("limit must be greater than 0")
        if self._capture_started:
            raise RuntimeError("capture() may only run once")
        self._capture_started = True

        while self._cached_bytes < limit:
            chunk = await self._pull()
            if chunk is None:
                break
            self._cache.append(chunk)
            self._cached_bytes += len(chunk)

        self._captured = True
        return self._prefix_copy(limit)

    def _prefix_copy(self, limit: int) -> bytes:
        parts: list[bytes] = []
        remaining = limit
        for chunk in self._cache:
            if remaining <= 0:
                break
            parts.append(chunk[:remaining])
            remaining -= len(chunk)
        return b"".join(parts)

    def replay(self) -> AsyncIterator[bytes]:
        """Return an iterator over the whole stream: cached chunks, then live ones.

        Raises
        ------
        RuntimeError
            If :meth:`capture` has not completed, or replay was already
            requested.
        """

        if not self._captured:
            raise RuntimeError("replay() requires a completed capture()")
        if self._replay_started:
            raise RuntimeError("replay() may only run once")
        self._replay_started = True
        return self._replay()

    async def _replay(self) -> AsyncIterator[bytes]:
        while self._cache:
            chunk = self._cache.popleft()
            self._cached_bytes -= len(chunk)
            yield chunk

        while True:
            chunk = await self._pull()
            if chunk is None:
                return
            yield chunk

    async def release(self) -> None:
        """Drop every cached chunk and close the raw source. Idempotent."""

        if self._released:
            return
        self._released = True
        self._cache.clear()
        self._cached_bytes = 0

        # A pull still in flight belongs to another frame which will unwind
        # the raw iterator itself.
        if self._pulling:
            return
        aclose = getattr(self._iterator, "aclose", None)
        if aclose is not None:
            await aclose()
