"""SSE (Server-Sent Events) frame parser for streaming responses.

This module turns a byte stream, delivered in arbitrary chunks, into a lazy
sequence of SSE records. Records are separated by a blank line; each record is
made of ``field: value`` lines. Both ``\\r\\n`` and ``\\n`` terminate a line.

A record that cannot be decoded does not stop the parse. It is reported as a
``StreamDecodeFault`` and the parser resumes at the next blank line.
"""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, Optional, Union


# Upper bound for a single record (or a single unterminated line) in bytes
DEFAULT_MAX_RECORD_SIZE = 1024 * 1024

_BOM = "\ufeff"


@dataclass(frozen=True)
class SseEvent:
    """One dispatched SSE event.

    Args:
        data: Event payload, multiple ``data`` lines joined with ``\\n``
        event: Event name from the ``event`` field, if any
        id: Event id from the ``id`` field, if any
    """

    data: str
    event: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class StreamDecodeFault:
    """A record that was skipped because it could not be decoded."""

    reason: str


SseRecord = Union[SseEvent, StreamDecodeFault]


class SseFrameParser:
    """Incremental SSE parser.

    Bytes are pushed with ``feed()`` and records are pulled with
    ``next_record()``. Only complete lines are decoded, so a record or a
    multi-byte character split across chunks is reassembled exactly.

    Args:
        max_record_size: Records larger than this many bytes are dropped
    """

    def __init__(self, max_record_size: int = DEFAULT_MAX_RECORD_SIZE) -> None:
        self.max_record_size = max_record_size
        self._buffer = bytearray()
        self._scan_from = 0
        self._first_line = True
        self._reset_record()

    def _reset_record(self) -> None:
        self._data_lines: list[str] = []
        self._event: Optional[str] = None
        self._id: Optional[str] = None
        self._fault: Optional[str] = None
        self._record_size = 0
        self._has_lines = False
        self._discarding_line = False

    def feed(self, chunk: bytes) -> None:
        """Append a chunk of the response body."""
        if not chunk:
            return
        if self._discarding_line:
            # Inside an oversized line: drop bytes until its terminator
            newline = chunk.find(b"\n")
            if newline < 0:
                return
            self._discarding_line = False
            chunk = chunk[newline + 1 :]
        self._buffer.extend(chunk)

    def next_record(self) -> Optional[SseRecord]:
        """Return the next complete record, or None if more bytes are needed."""
        while True:
            newline = self._buffer.find(b"\n", self._scan_from)
            if newline < 0:
                self._scan_from = len(self._buffer)
                # A lone byte may be the CR of a blank line, never drop it
                if (
                    len(self._buffer) > 1
                    and len(self._buffer) + self._record_size > self.max_record_size
                ):
                    self._buffer.clear()
                    self._scan_from = 0
                    self._discarding_line = True
                    self._has_lines = True
                    self._fault = self._fault or (
                        f"record exceeds {self.max_record_size} bytes"
                    )
                return None

            raw_line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            self._scan_from = 0
            if raw_line.endswith(b"\r"):
                raw_line = raw_line[:-1]

            record = self._process_line(raw_line)
            if record is not None:
                return record

    def finish(self) -> Optional[StreamDecodeFault]:
        """Signal end of stream.

        Returns:
            A fault if the stream ended inside an unterminated record,
            otherwise None
        """
        pending = bool(self._buffer) or self._has_lines or self._discarding_line
        self._buffer.clear()
        self._scan_from = 0
        self._reset_record()
        if pending:
            return StreamDecodeFault("unterminated record at end of stream")
        return None

    def _process_line(self, raw_line: bytes) -> Optional[SseRecord]:
        if not raw_line:
            return self._dispatch()

        self._has_lines = True
        self._record_size += len(raw_line) + 1
        if self._fault is not None:
            return None
        if self._record_size > self.max_record_size:
            self._fault = f"record exceeds {self.max_record_size} bytes"
            self._data_lines = []
            return None

        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError as e:
            self._fault = f"invalid UTF-8 at byte {e.start}"
            return None

        if self._first_line:
            self._first_line = False
            if line.startswith(_BOM):
                line = line[1:]

        if line.startswith(":"):
            return None

        name, colon, value = line.partition(":")
        if not colon:
            self._fault = f"field line without colon: {line[:40]!r}"
            return None
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data_lines.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self._id = value
        # "retry" and unknown fields are ignored
        return None

    def _dispatch(self) -> Optional[SseRecord]:
        fault = self._fault
        has_data = bool(self._data_lines)
        event = SseEvent(
            data="\n".join(self._data_lines), event=self._event or None, id=self._id
        )
        self._reset_record()
        if fault is not None:
            return StreamDecodeFault(fault)
        if not has_data:
            return None
        return event


def iter_sse_records(
    chunks: Iterable[bytes], max_record_size: int = DEFAULT_MAX_RECORD_SIZE
) -> Iterator[SseRecord]:
    """Lazily parse SSE records from an iterable of byte chunks."""
    parser = SseFrameParser(max_record_size)
    for chunk in chunks:
        parser.feed(chunk)
        record = parser.next_record()
        while record is not None:
            yield record
            record = parser.next_record()
    fault = parser.finish()
    if fault is not None:
        yield fault


async def aiter_sse_records(
    chunks: AsyncIterable[bytes], max_record_size: int = DEFAULT_MAX_RECORD_SIZE
) -> AsyncIterator[SseRecord]:
    """Lazily parse SSE records from an async iterable of byte chunks.

    Chunks are only pulled from ``chunks`` when no complete record is
    buffered, so a consumer that stops early stops the network reads too.
    """
    parser = SseFrameParser(max_record_size)
    async for chunk in chunks:
        parser.feed(chunk)
        record = parser.next_record()
        while record is not None:
            yield record
            record = parser.next_record()
    fault = parser.finish()
    if fault is not None:
        yield fault
