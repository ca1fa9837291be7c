"""Fixed-delay reopening of a dropped status stream."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ReconnectionSupervisor:
    """Owns the single active stream task and at most one pending reopen."""

    def __init__(
        self, open_stream: Callable[[], Awaitable[None]], delay: float = 5.0
    ) -> None:
        self._open_stream = open_stream
        self.delay = delay
        self._active: asyncio.Task | None = None
        self._pending: asyncio.Task | None = None

    @property
    def stream_running(self) -> bool:
        return self._active is not None and not self._active.done()

    @property
    def reconnect_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def open(self) -> bool:
        """Start the stream unless one is already running."""
        if self.stream_running:
            logger.debug("Stream already open, not starting another")
            return False
        self._active = asyncio.create_task(self._open_stream())
        return True

    def schedule(self) -> bool:
        """Arm one delayed reopen unless one is already pending."""
        if self.reconnect_pending:
            return False
        logger.info("Reopening status stream in %.1fs", self.delay)
        self._pending = asyncio.create_task(self._reopen_after_delay())
        return True

    async def cancel(self) -> None:
        """Cancel the pending reopen and the running stream."""
        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._pending, self._active)
            if task is not None and not task.done() and task is not current
        ]
        self._pending = None
        self._active = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _reopen_after_delay(self) -> None:
        await asyncio.sleep(self.delay)
        self._pending = None
        self.open()
