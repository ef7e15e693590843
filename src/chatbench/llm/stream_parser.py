"""
Streaming Delta Parser

Turns the chunked body of a streaming chat completion into delta events.

The body is a sequence of newline-delimited records:

    data: {"choices": [{"delta": {"content": "Hel"}, "finish_reason": null}]}
    data: {"choices": [{"delta": {"reasoning_content": "..."}}]}
    data: [DONE]

Network reads may split a record anywhere, including inside a multi-byte
character, so bytes are decoded incrementally and the last incomplete line is
carried over to the next chunk. A record that fails to decode is reported as
MALFORMED and parsing continues.
"""

import asyncio
import codecs
from contextlib import aclosing
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from ..constants import DATA_PREFIX, DONE_SENTINEL, PRIMARY_DELTA_FIELD, REASONING_DELTA_FIELD

T = TypeVar("T")


class DeltaKind(str, Enum):
    TEXT_DELTA = "text-delta"
    DONE = "done"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class DeltaEvent:
    """One parser event. `value` is set for TEXT_DELTA, `raw` for MALFORMED."""

    kind: DeltaKind
    value: str = ""
    source: str | None = None
    raw: str | None = None

    @classmethod
    def text(cls, value: str, source: str = PRIMARY_DELTA_FIELD) -> "DeltaEvent":
        return cls(DeltaKind.TEXT_DELTA, value=value, source=source)

    @classmethod
    def done(cls) -> "DeltaEvent":
        return cls(DeltaKind.DONE)

    @classmethod
    def malformed(cls, raw: str) -> "DeltaEvent":
        return cls(DeltaKind.MALFORMED, raw=raw)


class ChunkDelta(BaseModel):
    content: str | None = None
    reasoning_content: str | None = None


class ChunkChoice(BaseModel):
    delta: ChunkDelta | None = None
    finish_reason: str | None = None


class StreamChunk(BaseModel):
    """Shape of one streamed completion record."""

    choices: list[ChunkChoice]


class DeltaParser:
    """
    Incremental parser. Call feed() for every chunk read from the body and
    finish() once the body ends. Both return the events completed so far.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._done = False

    @property
    def is_done(self) -> bool:
        return self._done

    def feed(self, chunk: bytes) -> list[DeltaEvent]:
        if self._done:
            return []
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def finish(self) -> list[DeltaEvent]:
        """
        Finalize at end of body. Complete lines have already been parsed by
        feed(); an unterminated trailing fragment may be truncated and is dropped.
        """
        if self._done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        lines = self._buffer.split("\n")
        self._buffer = ""
        trailing = lines.pop()
        events = self._parse_lines(lines)
        if trailing.strip():
            logger.debug(f"Dropping unterminated stream fragment: {trailing[:80]!r}")
        return events

    def _parse_lines(self, lines: list[str]) -> list[DeltaEvent]:
        events = []
        for line in lines:
            event = self.parse_line(line)
            if event is None:
                continue
            events.append(event)
            if event.kind == DeltaKind.DONE:
                self._done = True
                self._buffer = ""
                break
        return events

    @staticmethod
    def parse_line(line: str) -> DeltaEvent | None:
        """Parse one complete line; returns None for lines that carry no event."""
        trimmed = line.strip()
        if not trimmed.startswith(DATA_PREFIX):
            return None

        payload = trimmed[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            return DeltaEvent.done()

        try:
            record = StreamChunk.model_validate_json(payload)
        except ValidationError:
            return DeltaEvent.malformed(payload)

        if not record.choices or record.choices[0].delta is None:
            return None

        delta = record.choices[0].delta
        if delta.content:
            return DeltaEvent.text(delta.content, PRIMARY_DELTA_FIELD)
        if delta.reasoning_content:
            return DeltaEvent.text(delta.reasoning_content, REASONING_DELTA_FIELD)
        return None


async def iter_until_cancelled(
    source: AsyncIterable[T], cancel_event: asyncio.Event | None = None
) -> AsyncGenerator[T, None]:
    """
    Iterate `source`, stopping as soon as `cancel_event` is set.

    The wait for each item is raced against the event, so a cancelled
    iteration does not sit on a pending network read until the next chunk.
    """
    iterator: AsyncIterator[T] = source.__aiter__()
    if cancel_event is None:
        async for item in iterator:
            yield item
        return

    cancel_wait = asyncio.ensure_future(cancel_event.wait())
    next_item = None
    try:
        while not cancel_event.is_set():
            next_item = asyncio.ensure_future(iterator.__anext__())
            done, _ = await asyncio.wait({next_item, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if next_item not in done:
                break
            try:
                item = next_item.result()
            except StopAsyncIteration:
                break
            if cancel_event.is_set():
                break
            yield item
    finally:
        cancel_wait.cancel()
        if next_item is not None and not next_item.done():
            next_item.cancel()
            try:
                await next_item
            except (asyncio.CancelledError, StopAsyncIteration):
                pass


async def parse_stream(
    chunks: AsyncIterable[bytes], cancel_event: asyncio.Event | None = None
) -> AsyncGenerator[DeltaEvent, None]:
    """
    Parse an async byte stream into delta events.
    Stops after DONE, when the body ends, or when `cancel_event` is set.
    """
    parser = DeltaParser()
    async with aclosing(iter_until_cancelled(chunks, cancel_event)) as body:
        async for chunk in body:
            for event in parser.feed(chunk):
                if cancel_event is not None and cancel_event.is_set():
                    return
                yield event
            if parser.is_done:
                return

    if cancel_event is not None and cancel_event.is_set():
        return
    for event in parser.finish():
        yield event
