"""Server-sent event parsing for streamed chat completion.

The parser is a buffered scanner over raw bytes: frames end at a blank line,
complete frames are decoded in arrival order, and whatever is left when the
stream ends is flushed as a best-effort final frame. Splitting the same bytes
into different chunks never changes the output.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from hfserverless.errors import DecodeError

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

FRAME_SEPARATOR = b"\n\n"
DONE_SENTINEL = "[DONE]"


def parse_frame(text: str) -> dict[str, Any]:
    """Decode one SSE frame into a dict.

    ``data`` values are JSON objects shallow-merged in order (later keys win).
    Other fields are kept verbatim under their name, with two exceptions:
    ``event`` lines are dropped, and so are comment lines (``: ping``, an
    empty field name) rather than being stored under ``""``. Keep-alive
    comments therefore never leak into normalized chunks.
    """
    result: dict[str, Any] = {}
    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        field, sep, value = line.partition(":")
        value = value.strip() if sep else ""

        if field == "data":
            if value == DONE_SENTINEL:
                continue
            result.update(_decode_data(value))
        elif field in ("event", ""):
            continue
        else:
            result[field] = value
    return result


def _decode_data(value: str) -> dict[str, Any]:
    try:
        decoded = json.loads(value)
    except ValueError as e:
        raise DecodeError(
            "failed to decode response",
            hint="A streamed event carried malformed JSON data.",
        ) from e
    if not isinstance(decoded, dict):
        raise DecodeError(
            "failed to decode response",
            hint=f"Expected a JSON object in event data, got {type(decoded).__name__}.",
        )
    return decoded


class SSEParser:
    """Incremental frame splitter holding bytes not yet resolved into a frame."""

    def __init__(self) -> None:
        self._buffer = b""

    @property
    def pending(self) -> bytes:
        """Bytes buffered after the last complete frame."""
        return self._buffer

    def feed(self, data: bytes) -> list[dict[str, Any]]:
        """Add *data* and return the non-empty frames it completed."""
        buffer = (self._buffer + data).replace(b"\r\n", b"\n")
        *complete, self._buffer = buffer.split(FRAME_SEPARATOR)
        return _decode_frames(complete)

    def flush(self) -> list[dict[str, Any]]:
        """Decode whatever remains buffered and reset the parser."""
        remainder, self._buffer = self._buffer, b""
        if not remainder.strip():
            return []
        return _decode_frames([remainder])


def _decode_frames(segments: list[bytes]) -> list[dict[str, Any]]:
    frames = []
    for segment in segments:
        try:
            text = segment.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(
                "failed to decode response",
                hint="A streamed event was not valid UTF-8.",
            ) from e
        frame = parse_frame(text)
        if frame:
            frames.append(frame)
    return frames


def iter_frames(chunks: Iterable[bytes]) -> Iterator[dict[str, Any]]:
    """Yield decoded frames from a synchronous byte stream."""
    parser = SSEParser()
    for chunk in chunks:
        yield from parser.feed(chunk)
    yield from parser.flush()


async def aiter_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded frames from an asynchronous byte stream."""
    parser = SSEParser()
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            yield frame
    for frame in parser.flush():
        yield frame
