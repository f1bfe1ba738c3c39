"""Stream sinks that drain a child process's output on their own task.

A sink is bound to exactly one stream. Binding starts an asyncio task that
reads the stream until EOF, so the child never blocks on a full pipe while
the executor waits for it to exit.

Read errors, and any other exception raised by a sink, end the sink's loop
and are logged; they are never raised to whoever launched the process.
``join()`` reports them as a nonzero status.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ..config import get_config
from ..errors import StreamDrainError

__all__ = [
    "AsyncSink",
    "NullAsyncSink",
    "LoggingAsyncSink",
    "CollectingAsyncSink",
]

logger = logging.getLogger(__name__)

# join() status values
DRAINED = 0
DRAIN_FAILED = 1


class AsyncSink(ABC):
    """Base class for asynchronous stream consumers.

    Subclasses implement ``consume()``; ``process_stream()`` runs it on a
    separate task and returns immediately.

    Example:
        sink = CollectingAsyncSink()
        sink.process_stream(process.stdout, name="stdout")
        ...
        status = await sink.join()
    """

    def __init__(self, chunk_size: int | None = None) -> None:
        self.chunk_size = chunk_size or get_config().read_chunk_size
        self.stream_name = "stream"
        self._task: asyncio.Task[int] | None = None

    @property
    def is_bound(self) -> bool:
        """Whether a stream has been attached."""
        return self._task is not None

    @property
    def done(self) -> bool:
        """Whether consumption has finished."""
        return self._task is not None and self._task.done()

    def process_stream(self, stream: asyncio.StreamReader, *, name: str = "stream") -> None:
        """Start consuming ``stream`` on a new task.

        Must be called from a running event loop.

        Args:
            stream: The byte stream to drain
            name: Stream label used in log messages

        Raises:
            RuntimeError: If this sink is already bound to a stream
        """
        if self._task is not None:
            raise RuntimeError(
                f"{type(self).__name__} is already bound to {self.stream_name}"
            )
        self.stream_name = name
        self._task = asyncio.create_task(
            self._drain(stream), name=f"pipedrain-sink-{name}"
        )

    async def join(self) -> int:
        """Wait for consumption to finish.

        Returns:
            0 if the stream was drained to EOF (or never bound), 1 if the
            drain stopped on a read error or an exception in consume()
        """
        if self._task is None:
            return DRAINED
        return await self._task

    @abstractmethod
    async def consume(self, stream: asyncio.StreamReader) -> None:
        """Read ``stream`` until end-of-stream."""

    async def _drain(self, stream: asyncio.StreamReader) -> int:
        try:
            await self.consume(stream)
        except (OSError, ValueError, asyncio.IncompleteReadError) as e:
            error = StreamDrainError(self.stream_name, f"{type(e).__name__}: {e}")
            logger.warning(f"Stopped draining after read error: {error}")
            return DRAIN_FAILED
        except Exception as e:
            # A failing consume() gets the same policy as a read error
            error = StreamDrainError(self.stream_name, f"{type(e).__name__}: {e}")
            logger.warning(f"Stopped draining after sink error: {error}", exc_info=True)
            return DRAIN_FAILED
        return DRAINED

    async def _read_chunks(self, stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                return
            yield chunk


class NullAsyncSink(AsyncSink):
    """Reads the stream to EOF and discards every byte."""

    async def consume(self, stream: asyncio.StreamReader) -> None:
        async for _ in self._read_chunks(stream):
            pass


class LoggingAsyncSink(AsyncSink):
    """Logs each line of the stream.

    Lines are decoded as UTF-8 (invalid bytes replaced) and logged without
    their line terminator. Blank lines are skipped. Lines are split from raw
    chunks rather than ``readline()``, so they are not limited by the
    reader's buffer limit. A line longer than ``max_line_bytes`` is logged in
    pieces of that size; a multi-byte character cut at a piece boundary
    shows up as replacement characters.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
        prefix: str = "",
        chunk_size: int | None = None,
        max_line_bytes: int | None = None,
    ) -> None:
        super().__init__(chunk_size)
        if max_line_bytes is not None and max_line_bytes < 1:
            raise ValueError("max_line_bytes must be positive")
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self.prefix = prefix
        self.max_line_bytes = max_line_bytes or get_config().max_line_bytes

    async def consume(self, stream: asyncio.StreamReader) -> None:
        line_buffer = bytearray()
        async for chunk in self._read_chunks(stream):
            # Only the new chunk is searched for line ends
            start = 0
            newline = chunk.find(b"\n")
            while newline >= 0:
                self._append(line_buffer, chunk[start:newline])
                self._emit(line_buffer)
                line_buffer.clear()
                start = newline + 1
                newline = chunk.find(b"\n", start)
            self._append(line_buffer, chunk[start:])

        # trailing line without newline
        if line_buffer:
            self._emit(line_buffer)

    def _append(self, line_buffer: bytearray, data: bytes) -> None:
        line_buffer += data
        while len(line_buffer) > self.max_line_bytes:
            self._emit(line_buffer[: self.max_line_bytes])
            del line_buffer[: self.max_line_bytes]

    def _emit(self, line_bytes: bytes | bytearray) -> None:
        line = line_bytes.decode("utf-8", errors="replace").rstrip("\r")
        if line.strip():
            self.logger.log(self.level, f"{self.prefix}{line}")


class CollectingAsyncSink(AsyncSink):
    """Accumulates the bytes read from the stream.

    Attributes:
        max_bytes: Keep only the newest ``max_bytes`` bytes (None = unbounded)
    """

    def __init__(self, max_bytes: int | None = None, chunk_size: int | None = None) -> None:
        super().__init__(chunk_size)
        if max_bytes is not None and max_bytes < 0:
            raise ValueError("max_bytes must be non-negative")
        self.max_bytes = max_bytes
        self._buffer = bytearray()
        self.total_bytes = 0

    async def consume(self, stream: asyncio.StreamReader) -> None:
        async for chunk in self._read_chunks(stream):
            self.total_bytes += len(chunk)
            self._buffer += chunk
            # Drop the oldest bytes once over the limit
            if self.max_bytes is not None and len(self._buffer) > self.max_bytes:
                del self._buffer[: len(self._buffer) - self.max_bytes]

    @property
    def data(self) -> bytes:
        """Bytes collected so far."""
        return bytes(self._buffer)

    @property
    def text(self) -> str:
        """Collected bytes decoded as UTF-8."""
        return self._buffer.decode("utf-8", errors="replace")
