"""
Streaming Relay.

Reads an upstream event stream and re-emits it to a downstream sink as
well-formed `data: ...\n\n` frames while the upstream is still producing.

Two strategies share one termination contract:

- "lines": reassemble newline-delimited lines across reads, drop padding,
  wrap non-conforming lines in the `data:` prefix.
- "raw": forward each upstream chunk untouched.

Termination:
- completed  -> frames..., done, close
- errored    -> frames..., error, done, close
- cancelled  -> frames..., close (no done: the client is gone)

The sink is closed exactly once on every path and the upstream source is
always released.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Literal, Optional

from .cancellation import DEADLINE, CancellationToken, TokenFired
from .errors import DownstreamGone, ErrorOrigin, UpstreamTimeoutError, classify, translate
from .frames import FRAME_SEPARATOR, StreamFrame
from .sink import QueueSink

logger = logging.getLogger(__name__)

RelayMode = Literal["lines", "raw"]
RelayStatus = Literal["completed", "errored", "cancelled"]

TERMINAL_WRITE_TIMEOUT_S = 5.0


@dataclass
class RelayOutcome:
    status: RelayStatus
    reason: Optional[str] = None
    frames_written: int = 0
    bytes_received: int = 0
    duration_ms: int = 0


class LineReassembler:
    """
    Carry-over buffer for the line strategy.

    feed() returns the complete lines in a read; the trailing partial line is
    held back until the next read or flush().
    """

    def __init__(self) -> None:
        self.carry = b""

    def feed(self, chunk: bytes) -> List[bytes]:
        lines = (self.carry + chunk).split(b"\n")
        self.carry = lines.pop()
        return [line.rstrip(b"\r") for line in lines if line.strip()]

    def flush(self) -> Optional[bytes]:
        rest, self.carry = self.carry, b""
        rest = rest.rstrip(b"\r")
        return rest if rest.strip() else None


def _frame_boundary(tail: bytes) -> bytes:
    """Bytes that end a partially forwarded raw frame before a terminal frame."""
    if tail.endswith(b"\n\n") or tail.endswith(b"\r\n\r\n"):
        return b""
    if tail.endswith(b"\n"):
        return b"\n"
    return FRAME_SEPARATOR


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def _release(upstream: AsyncIterable[bytes]) -> None:
    aclose = getattr(upstream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"Ignoring error while releasing upstream: {e}")


class StreamingRelay:
    """
    Relays one session.

    Usage:
        relay = StreamingRelay(mode="lines")
        outcome = await relay.relay(upstream_body, sink, token)
    """

    def __init__(self, mode: RelayMode = "lines"):
        if mode not in ("lines", "raw"):
            raise ValueError(f"Unknown relay mode: {mode}")
        self.mode = mode

    async def relay(
        self,
        upstream: AsyncIterable[bytes],
        sink: QueueSink,
        token: CancellationToken,
    ) -> RelayOutcome:
        started = time.monotonic()
        # "tail" holds the last bytes forwarded in raw mode
        state = {"frames": 0, "received": 0, "tail": FRAME_SEPARATOR}
        outcome = RelayOutcome(status="completed")

        try:
            if token.is_fired():
                outcome = RelayOutcome(status="cancelled", reason=token.reason)
                return outcome

            try:
                await self._pump(upstream, sink, token, state)
                done = _frame_boundary(state["tail"]) + StreamFrame.done().encode()
                await self._write(sink, token, done, state)
            except (TokenFired, DownstreamGone) as e:
                reason = token.reason if token.is_fired() else "downstream_closed"
                if reason == DEADLINE and not sink.detached:
                    outcome = await self._fail(
                        sink, ErrorOrigin.UPSTREAM_TIMEOUT,
                        UpstreamTimeoutError(token.budget_s), state,
                    )
                else:
                    logger.info(f"Relay cancelled ({reason}): {e}")
                    outcome = RelayOutcome(status="cancelled", reason=reason)
            except Exception as e:
                logger.error(f"Stream processing error: {e}", exc_info=True)
                outcome = await self._fail(sink, classify(e), e, state, token)
            return outcome
        finally:
            await _release(upstream)
            sink.close()
            outcome.frames_written = state["frames"]
            outcome.bytes_received = state["received"]
            outcome.duration_ms = int((time.monotonic() - started) * 1000)

    async def _pump(self, upstream, sink, token, state) -> None:
        reassembler = LineReassembler()
        chunks = upstream.__aiter__()

        while True:
            chunk = await token.guard(_next_chunk(chunks))
            if chunk is None:
                break
            state["received"] += len(chunk)

            if self.mode == "raw":
                if chunk:
                    await self._write(sink, token, chunk, state)
                    state["tail"] = (state["tail"] + chunk)[-4:]
                continue

            # An upstream `data: [DONE]` line is relayed like any other line;
            # the session's own done marker still follows it.
            for line in reassembler.feed(chunk):
                await self._write(sink, token, StreamFrame.data(line).encode(), state)

        if self.mode == "lines":
            rest = reassembler.flush()
            if rest is not None:
                await self._write(sink, token, StreamFrame.data(rest).encode(), state)

    async def _write(self, sink: QueueSink, token: CancellationToken, data: bytes, state) -> None:
        await token.guard(sink.write(data))
        state["frames"] += 1

    async def _fail(
        self,
        sink: QueueSink,
        origin: ErrorOrigin,
        err: BaseException,
        state,
        token: Optional[CancellationToken] = None,
    ) -> RelayOutcome:
        """
        Write the error frame followed by done.

        With no token (the deadline already fired it) each write gets a short
        bounded wait instead.
        """
        frame = _frame_boundary(state["tail"]) + translate(origin, err).encode()
        try:
            for data in (frame, StreamFrame.done().encode()):
                if token is not None:
                    await token.guard(sink.write(data))
                else:
                    await asyncio.wait_for(sink.write(data), TERMINAL_WRITE_TIMEOUT_S)
                state["frames"] += 1
        except (TokenFired, DownstreamGone, asyncio.TimeoutError):
            return RelayOutcome(status="cancelled", reason="downstream_closed")
        return RelayOutcome(status="errored", reason=origin.value)
