"""Transport seam: the protocol the core consumes and an httpx adapter."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

import httpx

from hfserverless.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

logger = logging.getLogger(__name__)

Method = Literal["GET", "POST"]


@dataclass(frozen=True)
class MultipartPart:
    """One named part of a multipart/form-data body."""

    name: str
    content: bytes | str
    filename: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class HTTPRequest:
    """A fully built request; either ``json`` or ``parts`` carries the body."""

    method: Method
    url: str
    headers: dict[str, str]
    json: Any = None
    parts: tuple[MultipartPart, ...] | None = None
    query: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HTTPResponse:
    """Status, headers and raw body bytes of a completed exchange."""

    status_code: int
    headers: dict[str, str]
    content: bytes


@runtime_checkable
class StreamedResponse(Protocol):
    """A response whose body is read incrementally."""

    @property
    def status_code(self) -> int: ...

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield body bytes as they arrive."""
        ...

    async def aread(self) -> bytes:
        """Read the remaining body at once."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Minimal transport protocol: send and stream.

    Implementations raise ``TransportError`` on network-level failures and
    return responses of any HTTP status otherwise.
    """

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        """Perform one request and return the whole response."""
        ...

    def stream(
        self, request: HTTPRequest
    ) -> AbstractAsyncContextManager[StreamedResponse]:
        """Open a streamed response; the body is read inside the context."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``.

    A client passed in stays owned by the caller; otherwise one is created
    lazily and closed by ``aclose()``.
    """

    def __init__(
        self, client: httpx.AsyncClient | None = None, *, timeout_s: float = 120.0
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    def _build(self, request: HTTPRequest) -> httpx.Request:
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "headers": request.headers,
            "params": request.query or None,
        }
        if request.parts is not None:
            files: list[tuple[str, Any]] = []
            data: dict[str, str] = {}
            for part in request.parts:
                if isinstance(part.content, str) and part.filename is None:
                    data[part.name] = part.content
                    continue
                files.append(
                    (
                        part.name,
                        (
                            part.filename or part.name,
                            part.content,
                            part.content_type or "application/octet-stream",
                        ),
                    )
                )
            kwargs["files"] = files
            if data:
                kwargs["data"] = data
        elif request.json is not None:
            kwargs["json"] = request.json
        return client.build_request(request.method, request.url, **kwargs)

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        """Send *request* and read the full body."""
        client = self._get_client()
        logger.debug("%s %s", request.method, request.url)
        try:
            response = await client.send(self._build(request))
        except httpx.RequestError as e:
            raise TransportError(
                f"{request.method} {request.url} failed: {e}",
                hint="Check network connectivity and the API URL.",
            ) from e
        return HTTPResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            content=response.content,
        )

    @asynccontextmanager
    async def stream(self, request: HTTPRequest) -> AsyncIterator[StreamedResponse]:
        """Open *request* as a streamed response."""
        client = self._get_client()
        logger.debug("%s %s (stream)", request.method, request.url)
        try:
            response = await client.send(self._build(request), stream=True)
        except httpx.RequestError as e:
            raise TransportError(
                f"{request.method} {request.url} failed: {e}",
                hint="Check network connectivity and the API URL.",
            ) from e
        try:
            yield _HttpxStreamedResponse(response)
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        """Close the underlying client when this transport created it."""
        client = self._client
        if client is None or not self._owns_client:
            return
        self._client = None
        await client.aclose()


class _HttpxStreamedResponse:
    """Adapts ``httpx.Response`` to StreamedResponse, mapping read failures."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.RequestError as e:
            raise TransportError(f"stream interrupted: {e}") from e

    async def aread(self) -> bytes:
        try:
            return await self._response.aread()
        except httpx.RequestError as e:
            raise TransportError(f"stream interrupted: {e}") from e
