"""
Downstream sink.

QueueSink sits between the relay (producer) and Starlette's StreamingResponse
(consumer). The queue is bounded, so a slow client applies backpressure to
the relay's writes instead of letting frames pile up in memory.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from .errors import DownstreamGone

logger = logging.getLogger(__name__)

DEFAULT_SINK_CAPACITY = 64


class QueueSink:
    """
    Byte-consuming destination for one relay session.

    Invariants:
    - close() is idempotent; the end-of-stream marker is queued once
    - write() after close() or after the consumer detached raises DownstreamGone
    """

    def __init__(self, capacity: int = DEFAULT_SINK_CAPACITY):
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._detached = False
        self.bytes_written = 0
        self.writes = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    async def write(self, data: bytes) -> None:
        if self._closed or self._detached:
            raise DownstreamGone("downstream sink is no longer accepting data")
        await self._queue.put(data)
        self.writes += 1
        self.bytes_written += len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Consumer drains the backlog and stops once it sees an empty, closed queue.
            pass

    def detach(self) -> None:
        """Consumer side is gone; pending and future writes are pointless."""
        self._detached = True

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is None:
                return
            yield item
