import asyncio
from typing import List, Optional, Sequence

from streaming.errors import UpstreamStatusError, UpstreamTransportError

from .base import UpstreamBackend, UpstreamStream
from .types import InferenceRequest

DEFAULT_SCRIPT = (
    b'data: {"choices":[{"delta":{"content":"This is a "}}]}\n\n',
    b'data: {"choices":[{"delta":{"content":"stubbed response."}}]}\n\n',
)


class StubUpstream(UpstreamBackend):
    """
    Deterministic fake upstream for testing and offline runs.

    Replays a fixed list of byte chunks. Can be told to fail before
    streaming (status_code != 200), to raise mid-stream after
    `fail_after` chunks, or to stall forever after `stall_after` chunks.
    """

    def __init__(
        self,
        chunks: Sequence[bytes] = DEFAULT_SCRIPT,
        status_code: int = 200,
        error_body: str = "",
        fail_after: Optional[int] = None,
        stall_after: Optional[int] = None,
        delay_s: float = 0.0,
    ):
        self.chunks = list(chunks)
        self.status_code = status_code
        self.error_body = error_body
        self.fail_after = fail_after
        self.stall_after = stall_after
        self.delay_s = delay_s
        self.requests: List[InferenceRequest] = []
        self.streams: List[UpstreamStream] = []
        self.chunks_served = 0

    async def _produce(self):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise UpstreamTransportError("connection reset by upstream")
            if self.stall_after is not None and index >= self.stall_after:
                await asyncio.Event().wait()
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            self.chunks_served += 1
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise UpstreamTransportError("connection reset by upstream")
        if self.stall_after is not None and self.stall_after >= len(self.chunks):
            await asyncio.Event().wait()

    async def open_stream(self, request: InferenceRequest) -> UpstreamStream:
        self.requests.append(request)
        if self.status_code != 200:
            raise UpstreamStatusError(self.status_code, "Stub Error", self.error_body)

        chunks = self._produce()
        stream = UpstreamStream(chunks, close=chunks.aclose)
        self.streams.append(stream)
        return stream
