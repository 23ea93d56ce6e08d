"""
client/banners.py
Auto-advancing banner carousel.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0


class BannerCarousel:
    """
    Cycles through banners on a fixed interval, wrapping back to the first.
    The timer only runs between start() and stop().
    """

    def __init__(
        self,
        banners: Sequence[Any],
        interval: float = DEFAULT_INTERVAL_SECONDS,
        on_change: Optional[Callable[[int], None]] = None,
    ):
        self.banners: List[Any] = list(banners)
        self.interval = interval
        self.on_change = on_change
        self.index = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def current(self) -> Optional[Any]:
        return self.banners[self.index] if self.banners else None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set(self, index: int) -> None:
        self.index = index
        if self.on_change:
            self.on_change(index)

    def next(self) -> None:
        if self.banners:
            self._set((self.index + 1) % len(self.banners))

    def previous(self) -> None:
        if self.banners:
            self._set((self.index - 1) % len(self.banners))

    def replace(self, banners: Sequence[Any]) -> None:
        self.banners = list(banners)
        if self.index >= len(self.banners):
            self._set(0)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.next()
            except Exception:
                # A failing listener must not stop the rotation
                logger.exception("Banner change listener failed")

    def start(self) -> None:
        if self.running or not self.banners:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
