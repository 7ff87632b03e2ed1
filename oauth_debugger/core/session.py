"""Per-flow bookkeeping that lives outside the flow state.

The session tracks the flow generation, the pending continuation, every
authorization code already processed and the lock that serializes step execution.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class FlowSession:
    """Generation counter, continuation timer and code de-duplication for one flow."""

    def __init__(self):
        self.generation = 0
        self.processed_codes: set[str] = set()
        self.lock = asyncio.Lock()
        self._pending: asyncio.Task | None = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self, delay: float, callback: Callable[[], Awaitable[object]]) -> asyncio.Task:
        """Run ``callback`` after ``delay`` seconds unless the flow moves on first.

        Any previously scheduled continuation is cancelled; the callback is
        dropped if the generation changes before it fires.
        """
        self.cancel_pending()
        generation = self.generation

        async def run() -> None:
            await asyncio.sleep(delay)
            if generation != self.generation:
                logger.debug("Dropping continuation scheduled before reset")
                return
            await callback()

        self._pending = asyncio.create_task(run())
        return self._pending

    def cancel_pending(self) -> None:
        """Cancel the scheduled continuation, unless it is the caller itself."""
        task = self._pending
        self._pending = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def reset(self) -> None:
        """Start a new generation.

        Cancels the continuation, forgets the processed codes and hands out a
        fresh lock so a new flow is not blocked by a superseded in-flight step.
        """
        self.generation += 1
        self.cancel_pending()
        self.processed_codes.clear()
        self.lock = asyncio.Lock()

    async def wait_idle(self) -> None:
        """Wait until scheduled continuations have run (used by hosts and tests)."""
        while self.has_pending:
            task = self._pending
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
