"""Tests for CancellationToken and cancellable sleep."""

import asyncio

import pytest

from conduit.execution.cancellation import CancellationToken, cancellable_sleep


class TestCancellationToken:
    """Token state."""

    def test_initial_state(self) -> None:
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None

    def test_cancel_is_one_shot(self) -> None:
        token = CancellationToken()
        token.cancel("user closed window")
        token.cancel("second call")
        assert token.cancelled
        assert token.reason == "user closed window"
        assert "cancelled=True" in repr(token)


class TestSleep:
    """Cancellable sleeping."""

    @pytest.mark.asyncio
    async def test_sleep_completes(self) -> None:
        assert await CancellationToken().sleep(0.01)

    @pytest.mark.asyncio
    async def test_sleep_interrupted(self) -> None:
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel)
        start = loop.time()

        completed = await token.sleep(10)

        assert not completed
        assert loop.time() - start < 5

    @pytest.mark.asyncio
    async def test_already_cancelled_returns_immediately(self) -> None:
        token = CancellationToken()
        token.cancel()
        assert not await token.sleep(10)

    @pytest.mark.asyncio
    async def test_cancellable_sleep_without_token(self) -> None:
        assert await cancellable_sleep(0.01, None)

    @pytest.mark.asyncio
    async def test_wait(self) -> None:
        token = CancellationToken()
        asyncio.get_running_loop().call_soon(token.cancel)
        await asyncio.wait_for(token.wait(), timeout=1)
        assert token.cancelled
