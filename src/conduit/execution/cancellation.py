"""Cooperative cancellation for logical operations.

One CancellationToken is created per logical operation and handed to the
Retry Orchestrator, which passes it to every Process Runner call and to the
backoff sleep. Cancelling the token stops the in-flight process (through the
runner's termination sequence) and wakes any pending backoff immediately.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """A one-shot cancellation signal backed by an asyncio.Event.

    ``cancel()`` may be called from any coroutine on the same loop, or from
    another thread via ``loop.call_soon_threadsafe(token.cancel)``.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Trigger cancellation. Subsequent calls are no-ops."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds unless cancelled first.

        Returns:
            True if the full delay elapsed, False if the token was cancelled.
        """
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return True
        return False

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


async def cancellable_sleep(delay: float, token: CancellationToken | None) -> bool:
    """Sleep that honours an optional token.

    Returns:
        True if the delay completed, False if cancelled.
    """
    if token is None:
        await asyncio.sleep(delay)
        return True
    return await token.sleep(delay)
