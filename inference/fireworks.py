import logging
import time
from typing import Optional

import httpx

from streaming.errors import (
    ConfigurationMissing,
    UpstreamStatusError,
    UpstreamTimeoutError,
    UpstreamTransportError,
)

from .base import UpstreamBackend, UpstreamStream
from .types import InferenceRequest

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://api.fireworks.ai/inference/v1/chat/completions"


class FireworksUpstream(UpstreamBackend):
    """
    Fireworks chat-completions backend over httpx.

    Each open_stream() call owns a fresh AsyncClient for the lifetime of the
    stream; closing the stream closes the client. No connection reuse across
    sessions.
    """

    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_UPSTREAM_URL,
        read_timeout_s: Optional[float] = 120.0,
        connect_timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize backend.

        Args:
            api_key: Bearer token for the upstream
            url: Chat-completions endpoint
            read_timeout_s: Per-read timeout (the session deadline is enforced separately)
            connect_timeout_s: Connection timeout
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        if not api_key:
            raise ConfigurationMissing("Please set FIREWORKS_API_KEY in the environment")
        self.api_key = api_key
        self.url = url
        self.timeout = httpx.Timeout(read_timeout_s, connect=connect_timeout_s)
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def open_stream(self, request: InferenceRequest) -> UpstreamStream:
        client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        started = time.monotonic()

        try:
            upstream_request = client.build_request(
                "POST",
                self.url,
                json=request.model_dump(),
                headers=self._headers(),
            )
            response = await client.send(upstream_request, stream=True)
        except httpx.TimeoutException as e:
            await client.aclose()
            raise UpstreamTimeoutError(message=f"Upstream timed out: {e}")
        except httpx.RequestError as e:
            await client.aclose()
            raise UpstreamTransportError(f"Request failed: {e}")
        except BaseException:
            await client.aclose()
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Upstream response status: {response.status_code}, time: {elapsed_ms}ms",
            extra={"status_code": response.status_code, "elapsed_ms": elapsed_ms},
        )

        async def close() -> None:
            await response.aclose()
            await client.aclose()

        if response.status_code < 200 or response.status_code >= 300:
            try:
                await response.aread()
                body = response.text
            except httpx.HTTPError as e:
                logger.error(f"Failed to read error response: {e}")
                body = f"Status code: {response.status_code}"
            finally:
                await close()
            logger.error(f"API error ({response.status_code}): {body[:200]}")
            raise UpstreamStatusError(response.status_code, response.reason_phrase, body)

        return UpstreamStream(
            response.aiter_bytes(),
            close=close,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
