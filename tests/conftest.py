# ruff: noqa: E402
from __future__ import annotations

import sys
from pathlib import Path

# Ensure repository root is first on sys.path
_repo_root: Path = Path(__file__).resolve().parent.parent  # tests/ -> repo root
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

from typing import AsyncIterator, List, Optional

import pytest

from csv_relay.core.exceptions import SourceReadError


class MockSettings:  # Does NOT inherit from real Settings
    """Mock Settings class for testing."""

    debug: bool = False
    commit_sha: Optional[str] = None
    prometheus_enabled: bool = False

    host: str = "127.0.0.1"
    port: int = 8080

    validation_bytes: int = 100
    upload_field: str = "file"

    def __init__(self, **kwargs):
        """Initialize with optional overrides for any attribute."""
        for key, value in self.__class__.__dict__.items():
            if not key.startswith("__") and not callable(value):
                setattr(self, key, value)

        if kwargs.get("validation_bytes", self.validation_bytes) < 1:
            raise ValueError("VALIDATION_BYTES must be >= 1")

        for key, value in kwargs.items():
            setattr(self, key, value)


class RecordingSource:
    """Async chunk source that records how it is consumed.

    Attributes:
        pulls: Number of ``__anext__`` calls that returned a chunk.
        closed: ``True`` once ``aclose`` was awaited.
        fail_after: When set, the pull following that many chunks raises
            :class:`SourceReadError` instead of returning a chunk.
    """

    def __init__(
        self,
        chunks: List[bytes],
        *,
        fail_after: Optional[int] = None,
        error: str = "connection reset by peer",
    ) -> None:
        self._chunks = list(chunks)
        self._index = 0
        self.fail_after = fail_after
        self.error = error
        self.pulls = 0
        self.requested: List[int] = []
        self.closed = False

    def __aiter__(self) -> "RecordingSource":
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        if self.fail_after is not None and self._index >= self.fail_after:
            raise SourceReadError(self.error)
        if self._index >= len(self._chunks):
            raise StopAsyncIteration
        self.requested.append(self._index)
        chunk = self._chunks[self._index]
        self._index += 1
        self.pulls += 1
        return chunk

    async def aclose(self) -> None:
        self.closed = True


def split(data: bytes, chunk_size: int) -> List[bytes]:
    """Split *data* into *chunk_size* pieces (last one may be shorter)."""
    return [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]


async def collect(chunks: AsyncIterator[bytes]) -> bytes:
    parts: List[bytes] = []
    async for chunk in chunks:
        parts.append(chunk)
    return b"".join(parts)


BOUNDARY = "csvrelayboundary7MA4YWxkTrZu0gW"


def multipart_body(
    content: bytes,
    *,
    field: str = "file",
    filename: str = "data.csv",
    boundary: str = BOUNDARY,
    extra_fields: Optional[dict] = None,
) -> bytes:
    """Return a complete ``multipart/form-data`` body carrying *content*."""

    parts: List[bytes] = []
    for name, value in (extra_fields or {}).items():
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            ).encode("utf-8")
        )
    parts.append(
        (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
            "Content-Type: text/csv\r\n\r\n"
        ).encode("utf-8")
    )
    parts.append(content)
    parts.append(f"\r\n--{boundary}--\r\n".encode("ascii"))
    return b"".join(parts)


@pytest.fixture
def mock_settings():
    """Provide a plain MockSettings instance. Dependency injection is handled by app.dependency_overrides in client fixtures."""
    settings = MockSettings()
    yield settings


@pytest.fixture(autouse=True)
def _disable_dotenv(monkeypatch):
    """Prevent the application Settings class from reading the developer *.env* file.

    Unit-tests must operate against a *clean* environment; a local ``.env``
    with ``VALIDATION_BYTES`` would otherwise invalidate default-value
    assertions.
    """

    from csv_relay.core.config import Settings  # Imported here to avoid circularity

    monkeypatch.setitem(Settings.model_config, "env_file", None)
    for name in ("VALIDATION_BYTES", "UPLOAD_FIELD", "PROMETHEUS_ENABLED", "DEBUG"):
        monkeypatch.delenv(name, raising=False)
