from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, Optional

from .types import InferenceRequest


class UpstreamStream:
    """
    Readable upstream response body for one relay session.

    Iterating yields raw byte chunks as they arrive; aclose() releases the
    underlying connection and is safe to call more than once.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        close: Optional[Callable[[], Awaitable[None]]] = None,
        status_code: int = 200,
        elapsed_ms: int = 0,
    ):
        self._chunks = chunks
        self._close = close
        self._closed = False
        self.status_code = status_code
        self.elapsed_ms = elapsed_ms

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            await self._close()


class UpstreamBackend(ABC):
    """
    Upstream inference boundary.
    Relay code must depend ONLY on this interface.
    """

    @abstractmethod
    async def open_stream(self, request: InferenceRequest) -> UpstreamStream:
        """
        Send the request and return once response headers arrive.

        Raises:
            UpstreamStatusError: non-2xx response (body already read)
            UpstreamTimeoutError: upstream did not answer in time
            UpstreamTransportError: network failure
        """
        raise NotImplementedError
