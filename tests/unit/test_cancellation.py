"""
Cancellation Controller Tests

Verifies:
✔ Deadline timer fires the token
✔ Downstream close pre-empts the deadline
✔ fire() is idempotent and the first reason sticks
✔ guard() returns results, or raises TokenFired and cancels the operation
"""

import asyncio

import pytest

from streaming import (
    ABORTED,
    DEADLINE,
    DOWNSTREAM_CLOSED,
    CancellationController,
    CancellationToken,
    TokenFired,
)


class TestTokenFiring:
    @pytest.mark.asyncio
    async def test_fire_is_idempotent(self):
        token = CancellationToken()

        assert token.fire(DOWNSTREAM_CLOSED) is True
        assert token.fire(DEADLINE) is False
        assert token.is_fired()
        assert token.reason == DOWNSTREAM_CLOSED

    @pytest.mark.asyncio
    async def test_deadline_fires_token(self):
        controller = CancellationController()
        token, _ = controller.begin(0.01)

        reason = await asyncio.wait_for(token.wait(), timeout=1.0)

        assert reason == DEADLINE
        assert controller.is_fired(token)

    @pytest.mark.asyncio
    async def test_downstream_close_preempts_deadline(self):
        controller = CancellationController()
        token, _ = controller.begin(30)

        controller.on_downstream_close(token)

        assert token.reason == DOWNSTREAM_CLOSED
        assert token._timer is None

    @pytest.mark.asyncio
    async def test_cancel_fn_aborts(self):
        controller = CancellationController()
        token, cancel = controller.begin(30)

        assert cancel() is True
        assert cancel() is False
        assert token.reason == ABORTED

    @pytest.mark.asyncio
    async def test_disarm_prevents_deadline(self):
        controller = CancellationController()
        token, _ = controller.begin(0.01)
        token.disarm()

        await asyncio.sleep(0.05)

        assert not token.is_fired()

    @pytest.mark.asyncio
    async def test_no_budget_means_no_timer(self):
        token, _ = CancellationController().begin(None)
        assert token._timer is None
        assert not token.is_fired()


class TestGuard:
    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_propagates_operation_error(self):
        token = CancellationToken()

        async def work():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await token.guard(work())

    @pytest.mark.asyncio
    async def test_guard_unwinds_blocked_operation(self):
        token = CancellationToken()
        cancelled = asyncio.Event()

        async def blocked():
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.01, token.fire, DOWNSTREAM_CLOSED)

        with pytest.raises(TokenFired) as exc_info:
            await asyncio.wait_for(token.guard(blocked()), timeout=1.0)

        assert exc_info.value.reason == DOWNSTREAM_CLOSED
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_guard_on_fired_token_never_runs_operation(self):
        token = CancellationToken()
        token.fire()
        ran = []

        async def work():
            ran.append(True)

        with pytest.raises(TokenFired):
            await token.guard(work())

        assert ran == []
