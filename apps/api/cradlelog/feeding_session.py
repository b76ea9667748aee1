"""Breastfeeding session: timer plus the save flow around it."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from .errors import SaveInProgressError, SessionValidationError
from .feeding_timer import FeedingTimer
from .records import FeedingDraft
from .schemas import FeedingRecord, FeedingType, Side
from .ticker import Ticker

logger = logging.getLogger(__name__)


class FeedingStore(Protocol):
    async def create_feeding(self, draft: FeedingDraft) -> FeedingRecord: ...


class FeedingSession:
    """One account's in-progress nursing session.

    State survives a failed save untouched, so the same session can be saved
    again later; only a successful save resets it.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime],
        ticker_factory: Optional[Callable[[Callable[[], None]], Ticker]] = None,
    ) -> None:
        self.timer = FeedingTimer()
        self.baby_id: Optional[str] = None
        self.note = ""
        self.saving = False
        self._clock = clock
        self.display_elapsed = 0
        self.ticker = (ticker_factory or Ticker)(self.refresh_display)

    def refresh_display(self) -> None:
        self.display_elapsed = self.timer.elapsed(self._clock())

    def _sync_ticker(self) -> None:
        self.ticker.sync(self.timer.running)

    def start(self, now: datetime, *, baby_id: Optional[str] = None, note: Optional[str] = None) -> None:
        self.timer.start(now)
        if baby_id is not None:
            self.baby_id = baby_id
        if note is not None:
            self.note = note
        self.display_elapsed = 0
        self._sync_ticker()
        logger.info("feeding timer started", extra={"baby_id": self.baby_id})

    def toggle(self, side: Side, now: datetime) -> bool:
        return self.timer.toggle(side, now)

    def toggle_both(self, now: datetime) -> bool:
        return self.timer.toggle_both(now)

    def reset(self) -> None:
        self.timer.reset()
        self.note = ""
        self.display_elapsed = 0
        self._sync_ticker()

    async def save(
        self,
        store: FeedingStore,
        now: datetime,
        *,
        baby_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> FeedingRecord:
        if self.saving:
            raise SaveInProgressError("This feeding is already being saved.")
        selected = baby_id if baby_id is not None else self.baby_id
        if not selected:
            raise SessionValidationError("Select a baby before saving.")
        totals = self.timer.stop(now)

        # Only a save that passed validation may change the session.
        self.baby_id = selected
        if note is not None:
            self.note = note
        draft = FeedingDraft(
            baby_id=self.baby_id,
            start_time=totals.started_at,
            end_time=totals.ended_at,
            duration=totals.total,
            left_duration=totals.left,
            right_duration=totals.right,
            note=self.note,
            feeding_type=FeedingType.BREAST,
        )

        self.saving = True
        try:
            record = await store.create_feeding(draft)
        except Exception:
            logger.warning(
                "feeding save failed; session kept for retry",
                extra={"baby_id": self.baby_id, "duration": totals.total},
            )
            raise
        finally:
            self.saving = False

        logger.info(
            "feeding saved",
            extra={
                "record_id": record.id,
                "baby_id": self.baby_id,
                "duration": totals.total,
                "left": totals.left,
                "right": totals.right,
            },
        )
        self.reset()
        return record
