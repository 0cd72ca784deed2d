"""Periodic pull that backs up the live channel.

Pushes are only a latency optimization; anything missed while disconnected
is picked up by the next pull.
"""
import asyncio
from typing import Optional

from .api_interface import APIInterface
from .errors import ApiError
from .log import get_logger
from .store import NotificationStore

logger = get_logger("poller")


class NotificationPoller:
    def __init__(self, api: APIInterface, store: NotificationStore, interval: float = 30.0, limit: int = 20):
        self.api = api
        self.store = store
        self.interval = interval
        self.limit = limit
        self._task: Optional[asyncio.Task] = None
        self.last_error: Optional[ApiError] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> bool:
        try:
            page = await asyncio.to_thread(self.api.get_notifications, 1, self.limit)
        except ApiError as exc:
            self.last_error = exc
            logger.warning("notification poll failed: %s", exc.message)
            return False
        self.last_error = None
        self.store.apply_pull(page.items)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("notification poll crashed; retrying next interval")
            await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
