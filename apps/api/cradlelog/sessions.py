"""In-memory registry of per-account feeding and sleep sessions."""
from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
from typing import Callable, Dict, Optional

from fastapi import Request

from .feeding_session import FeedingSession
from .sleep_tracker import SleepSession
from .supabase import AuthContext
from .ticker import Scheduler, Ticker


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SessionRegistry:
    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utcnow,
        scheduler: Optional[Scheduler] = None,
        interval: Optional[float] = None,
    ) -> None:
        self.clock = clock
        self._ticker_factory = partial(Ticker, scheduler=scheduler, interval=interval)
        self._feedings: Dict[str, FeedingSession] = {}
        self._sleeps: Dict[str, SleepSession] = {}

    @staticmethod
    def _key(auth: AuthContext) -> str:
        return f"{auth.family_id}:{auth.user_id}"

    def feeding(self, auth: AuthContext) -> FeedingSession:
        key = self._key(auth)
        if key not in self._feedings:
            self._feedings[key] = FeedingSession(
                clock=self.clock, ticker_factory=self._ticker_factory
            )
        return self._feedings[key]

    def sleep(self, auth: AuthContext) -> SleepSession:
        key = self._key(auth)
        if key not in self._sleeps:
            self._sleeps[key] = SleepSession(clock=self.clock, ticker_factory=self._ticker_factory)
        return self._sleeps[key]

    def release(self, auth: AuthContext) -> None:
        """Drop this account's sessions once nothing is left running."""

        key = self._key(auth)
        feeding = self._feedings.get(key)
        if feeding is not None and not (feeding.timer.running or feeding.saving):
            feeding.ticker.cancel()
            del self._feedings[key]
        sleep = self._sleeps.get(key)
        if sleep is not None and not (sleep.tracker.has_sleeping() or sleep.busy):
            sleep.ticker.cancel()
            del self._sleeps[key]

    def shutdown(self) -> None:
        for session in [*self._feedings.values(), *self._sleeps.values()]:
            session.ticker.cancel()


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions
