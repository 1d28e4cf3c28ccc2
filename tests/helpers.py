"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off transport classes as coverage expands.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any

from hfserverless.transport import HTTPRequest, HTTPResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


def json_response(payload: Any, status_code: int = 200) -> HTTPResponse:
    return HTTPResponse(
        status_code=status_code,
        headers={"content-type": "application/json"},
        content=json.dumps(payload).encode("utf-8"),
    )


def sse_bytes(*payloads: dict[str, Any]) -> bytes:
    """Encode payloads as ``data:`` frames."""
    return b"".join(f"data: {json.dumps(p)}\n\n".encode() for p in payloads)


@dataclass
class StreamScript:
    """A scripted streamed response: status plus body chunks."""

    status_code: int = 200
    chunks: list[bytes] = field(default_factory=list)
    #: Raised after all chunks were yielded, when set.
    error: BaseException | None = None


@dataclass
class _FakeStreamedResponse:
    script: StreamScript
    closed: bool = False

    @property
    def status_code(self) -> int:
        return self.script.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        for chunk in self.script.chunks:
            yield chunk
        if self.script.error is not None:
            raise self.script.error

    async def aread(self) -> bytes:
        return b"".join(self.script.chunks)


@dataclass
class ScriptedTransport:
    """Transport that replays a scripted sequence and records every request.

    ``send`` consumes HTTPResponse or exception items; ``stream`` consumes
    StreamScript or exception items.
    """

    script: list[HTTPResponse | StreamScript | BaseException] = field(
        default_factory=list
    )
    requests: list[HTTPRequest] = field(default_factory=list)
    opened_streams: list[_FakeStreamedResponse] = field(default_factory=list)
    closed: bool = False

    def _next(self) -> HTTPResponse | StreamScript:
        if not self.script:
            raise AssertionError("ScriptedTransport ran out of scripted responses")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        self.requests.append(request)
        item = self._next()
        assert isinstance(item, HTTPResponse)
        return item

    @asynccontextmanager
    async def stream(self, request: HTTPRequest) -> AsyncIterator[_FakeStreamedResponse]:
        self.requests.append(request)
        item = self._next()
        assert isinstance(item, StreamScript)
        response = _FakeStreamedResponse(item)
        self.opened_streams.append(response)
        try:
            yield response
        finally:
            response.closed = True

    async def aclose(self) -> None:
        self.closed = True
