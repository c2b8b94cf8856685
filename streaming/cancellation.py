"""
Cancellation Controller.

A CancellationToken merges three stop signals for one relay session:

- the wall-clock budget (deadline timer),
- an explicit abort from the caller,
- the downstream client going away.

Whichever fires first wins; the token never resets and later firings are
ignored. Consumers await I/O through `token.guard(...)`, which races the
operation against the token so a fired token unwinds the session within one
suspension point.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEADLINE = "deadline"
DOWNSTREAM_CLOSED = "downstream_closed"
ABORTED = "aborted"


class TokenFired(Exception):
    """Raised by CancellationToken.guard when the token fires first."""

    def __init__(self, reason: Optional[str]):
        self.reason = reason
        super().__init__(f"cancellation token fired ({reason})")


class CancellationToken:
    """One-shot, idempotent stop signal."""

    def __init__(self, budget_s: Optional[float] = None):
        self.budget_s = budget_s
        self.reason: Optional[str] = None
        self.fired_at: Optional[float] = None
        self._event = asyncio.Event()
        self._timer: Optional[asyncio.TimerHandle] = None

    def fire(self, reason: str = ABORTED) -> bool:
        """
        Trigger the token.

        Returns:
            True if this call fired the token, False if it was already fired
        """
        if self._event.is_set():
            return False
        self.reason = reason
        self.fired_at = time.monotonic()
        self._event.set()
        self.disarm()
        return True

    def is_fired(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> Optional[str]:
        await self._event.wait()
        return self.reason

    def arm(self, budget_s: float) -> None:
        """Start the deadline timer. The timer fires the token with reason 'deadline'."""
        self.disarm()
        self.budget_s = budget_s
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(budget_s, self.fire, DEADLINE)

    def disarm(self) -> None:
        """Stop the deadline timer without firing."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        Raises:
            TokenFired: token fired before (or while) the operation ran;
                the operation is cancelled and left behind
        """
        if self.is_fired():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TokenFired(self.reason)

        op = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({op, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            op.cancel()
            raise
        finally:
            stop.cancel()

        if op.done():
            return op.result()

        op.cancel()
        # The op must finish unwinding before the caller releases its source.
        await asyncio.gather(op, return_exceptions=True)
        raise TokenFired(self.reason)

    def __repr__(self) -> str:
        state = f"fired:{self.reason}" if self.is_fired() else "live"
        return f"CancellationToken({state}, budget_s={self.budget_s})"


class CancellationController:
    """
    Creates and triggers cancellation tokens.

    Usage:
        controller = CancellationController()
        token, cancel = controller.begin(120)
        ...
        controller.on_downstream_close(token)
    """

    def begin(self, budget_s: Optional[float]) -> Tuple[CancellationToken, Callable[[], bool]]:
        """
        Start a session token with a deadline of `budget_s` seconds.

        Must be called from a running event loop.

        Returns:
            (token, cancel_fn) where cancel_fn aborts the session
        """
        token = CancellationToken(budget_s)
        if budget_s is not None:
            token.arm(budget_s)

        def cancel() -> bool:
            return self.fire(token, ABORTED)

        return token, cancel

    def on_downstream_close(self, token: CancellationToken) -> None:
        """Client connection closed: pre-empt the deadline immediately."""
        if self.fire(token, DOWNSTREAM_CLOSED):
            logger.info("Client closed connection")

    def fire(self, token: CancellationToken, reason: str = ABORTED) -> bool:
        fired = token.fire(reason)
        if fired:
            logger.debug(f"Cancellation token fired: {reason}")
        return fired

    def is_fired(self, token: CancellationToken) -> bool:
        return token.is_fired()
