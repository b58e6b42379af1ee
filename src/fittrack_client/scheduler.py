# src/fittrack_client/scheduler.py

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    A single cancellable repeating task on the running event loop.
    At most one loop is active per instance: start() replaces a running loop.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]], name: str = "periodic-task"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug(f"PeriodicTask: started {self.name} (every {self.interval}s)")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # Called from our own callback: detach and let the loop exit after the callback returns
            return
        task.cancel()
        logger.debug(f"PeriodicTask: stopped {self.name}")

    async def _run(self) -> None:
        me = asyncio.current_task()
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except Exception as e:
                logger.error(f"PeriodicTask: {self.name} callback raised: {e}", exc_info=True)
            if self._task is not me:
                return
