from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List

import pytest
from starlette.responses import PlainTextResponse

from csv_relay.api.responses import RelayResponse, build_upload_response
from csv_relay.ingestion.pipeline import PeekReplayPipeline, PipelineState
from tests.conftest import RecordingSource, split


async def _no_receive() -> Dict[str, Any]:
    raise AssertionError("the relay response must not read from receive()")


class _Sink:
    """ASGI ``send`` that records messages and can fail like a dropped socket."""

    def __init__(
        self, fail_on_body: int | None = None, fail_on_start: bool = False
    ) -> None:
        self.messages: List[Dict[str, Any]] = []
        self._fail_on_body = fail_on_body
        self._fail_on_start = fail_on_start
        self._bodies = 0

    async def __call__(self, message: Dict[str, Any]) -> None:
        if message["type"] == "http.response.start" and self._fail_on_start:
            raise OSError("connection reset")
        if message["type"] == "http.response.body":
            if self._bodies == self._fail_on_body:
                raise OSError("broken pipe")
            self._bodies += 1
        self.messages.append(message)

    @property
    def body(self) -> bytes:
        return b"".join(
            m.get("body", b"")
            for m in self.messages
            if m["type"] == "http.response.body"
        )


_SCOPE: Dict[str, Any] = {"type": "http", "method": "POST", "path": "/upload"}


@pytest.mark.asyncio
async def test_relay_response_streams_without_touching_receive() -> None:
    released: List[bool] = []

    async def _release() -> None:
        released.append(True)

    async def _chunks() -> AsyncIterator[bytes]:
        yield b"id,name\n"
        yield b"1,Alice\n"

    sink = _Sink()
    response = RelayResponse(_chunks(), media_type="text/plain", release=_release)
    await response(_SCOPE, _no_receive, sink)

    start = sink.messages[0]
    assert start["type"] == "http.response.start"
    assert start["status"] == 200
    header_names = {name for name, _ in start["headers"]}
    assert b"content-length" not in header_names
    assert sink.body == b"id,name\n1,Alice\n"
    assert sink.messages[-1]["more_body"] is False
    assert released == [True]


@pytest.mark.asyncio
async def test_relay_response_releases_when_client_goes_away() -> None:
    source = RecordingSource(split(b"id,name\n" * 1000, 512))
    pipeline = PeekReplayPipeline(source)
    assert (await pipeline.inspect()).accepted

    sink = _Sink(fail_on_body=2)
    response = build_upload_response(pipeline.outcome, pipeline)
    await response(_SCOPE, _no_receive, sink)

    assert len(sink.body) == 1024
    assert source.closed is True
    assert pipeline.state is PipelineState.DONE


@pytest.mark.asyncio
async def test_relay_response_releases_when_first_send_fails() -> None:
    """The body iterator never started, so only the release hook can clean up."""
    source = RecordingSource([b"id,name\n"])
    pipeline = PeekReplayPipeline(source)
    await pipeline.inspect()

    sink = _Sink(fail_on_start=True)
    await build_upload_response(pipeline.outcome, pipeline)(_SCOPE, _no_receive, sink)

    assert source.closed is True
    assert pipeline.source.cached_bytes == 0


@pytest.mark.asyncio
async def test_read_failure_mid_relay_truncates_the_response() -> None:
    """The closing body message is withheld so the transfer ends incomplete."""
    source = RecordingSource(split(b"id,name\n" * 100, 200), fail_after=2)
    pipeline = PeekReplayPipeline(source)
    await pipeline.inspect()

    sink = _Sink()
    await build_upload_response(pipeline.outcome, pipeline)(_SCOPE, _no_receive, sink)

    assert sink.body == (b"id,name\n" * 100)[:400]
    assert all(m.get("more_body", True) for m in sink.messages[1:])
    assert source.closed is True
    assert pipeline.state is PipelineState.ERROR


@pytest.mark.asyncio
async def test_unexpected_failure_mid_relay_truncates_the_response() -> None:
    async def _broken() -> AsyncIterator[bytes]:
        yield b"id,name\n" * 20
        raise ValueError("decoder blew up")

    pipeline = PeekReplayPipeline(_broken())
    await pipeline.inspect()

    sink = _Sink()
    await build_upload_response(pipeline.outcome, pipeline)(_SCOPE, _no_receive, sink)

    assert sink.body == b"id,name\n" * 20
    assert all(m.get("more_body", True) for m in sink.messages[1:])
    assert pipeline.state is PipelineState.ERROR
    assert pipeline.source.released is True


@pytest.mark.asyncio
async def test_rejected_outcome_is_plain_text_400() -> None:
    pipeline = PeekReplayPipeline(RecordingSource([b"\x00\x01\x02"]))
    outcome = await pipeline.inspect()

    response = build_upload_response(outcome, pipeline)

    assert isinstance(response, PlainTextResponse)
    assert response.status_code == 400
    assert response.body == (
        b"Invalid CSV format: first 3 bytes contain invalid characters"
    )
    assert response.media_type == "text/plain"


@pytest.mark.asyncio
async def test_empty_outcome_is_plain_text_400() -> None:
    pipeline = PeekReplayPipeline(RecordingSource([]))
    response = build_upload_response(await pipeline.inspect(), pipeline)

    assert response.status_code == 400
    assert response.body == b"Empty file"


@pytest.mark.asyncio
async def test_accepted_outcome_is_streaming_200() -> None:
    pipeline = PeekReplayPipeline(RecordingSource([b"a,b\n"]))
    response = build_upload_response(await pipeline.inspect(), pipeline)

    assert isinstance(response, RelayResponse)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    await pipeline.aclose()
