"""
Scheduled Tasks - Start/stop handles for repeating background work.

The price ticker is the only autonomous activity in a session. It runs as
an asyncio task on the server loop and is owned by the session controller,
which starts it on activate and stops it on deactivate.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask(ABC):
    """Repeating callback with an explicit start/stop handle."""

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        pass


class PriceTicker(ScheduledTask):
    """
    Calls `callback` every `interval_sec` on the running event loop.

    Ticks are strictly sequential: the next sleep starts only after the
    callback returns. stop() cancels the task; a tick whose sleep already
    finished is dropped rather than delivered late.
    """

    def __init__(self, callback: Callable[[], None], interval_sec: float = 2.0, name: str = "price-ticker"):
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be positive, got {interval_sec}")
        self.callback = callback
        self.interval_sec = interval_sec
        self.name = name
        self.tick_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)
        logger.info(f"[{self.name}] started (every {self.interval_sec}s)")

    def stop(self) -> None:
        """Stop ticking immediately. Safe to call when not running."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info(f"[{self.name}] stopped after {self.tick_count} ticks")

    async def _run(self) -> None:
        me = asyncio.current_task()
        while True:
            await asyncio.sleep(self.interval_sec)

            # Stopped (or restarted) while we were sleeping
            if self._task is not me:
                return

            try:
                self.callback()
                self.tick_count += 1
            except Exception as e:
                logger.exception(f"[{self.name}] tick failed: {e}")
