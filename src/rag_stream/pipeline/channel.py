"""Single-writer byte channel connecting the pipeline to the HTTP response."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

_CLOSED = object()


class ChannelClosed(RuntimeError):
    """Raised when writing to a channel that was already closed."""


class OutputChannel:
    """Unbounded queue of byte chunks with an explicit close marker.

    Writes never wait on the reader, so a disconnected client does not stall
    the background task that is producing output.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ChannelClosed("write after close")
        if data:
            await self._queue.put(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    async def read_all(self) -> bytes:
        return b"".join([chunk async for chunk in self])
