"""Cancellable periodic callback used to refresh elapsed-time displays."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from .config import CONFIG

logger = logging.getLogger(__name__)


class Handle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Handle]


def loop_scheduler(delay: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, fn)


class Ticker:
    """Fires ``callback`` every ``interval`` seconds while it is needed.

    Owners call :meth:`sync` after each state change with whether any session
    is still active. The schedule is created on the first ``True`` and
    cancelled on the first ``False``; repeated calls with the same answer do
    nothing.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        *,
        interval: Optional[float] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._callback = callback
        self.interval = interval if interval is not None else CONFIG.tick_interval_seconds
        self._scheduler = scheduler or loop_scheduler
        self._handle: Optional[Handle] = None
        self.ticks = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    def sync(self, needed: bool) -> None:
        if needed and self._handle is None:
            self._handle = self._scheduler(self.interval, self._fire)
            logger.debug("ticker started", extra={"interval": self.interval})
        elif not needed and self._handle is not None:
            self.cancel()

    def cancel(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.debug("ticker cancelled", extra={"ticks": self.ticks})

    def _fire(self) -> None:
        if self._handle is None:
            return
        self.ticks += 1
        self._handle = self._scheduler(self.interval, self._fire)
        self._callback()
