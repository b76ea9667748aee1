"""Dual-side feeding timer.

A nursing session runs on one wall clock while the left and right sides are
switched on and off independently. Each side keeps an accumulated total in
whole seconds plus at most one open interval. When the session stops, open
intervals are closed out and reconciled with the wall clock:

* a session where no side was ever picked credits the whole elapsed time to
  the left side;
* the total is never less than ``left + right`` nor less than the wall clock.

Every operation takes ``now`` explicitly so callers (and tests) control time.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .errors import EmptySessionError, TimerStateError
from .schemas import Side


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from ``start`` to ``end``, floored and never negative."""

    return max(0, math.floor((end - start).total_seconds()))


@dataclass
class SideClock:
    active: bool = False
    started_at: Optional[datetime] = None
    accumulated: int = 0

    def switch_on(self, now: datetime) -> None:
        self.active = True
        self.started_at = now

    def open_seconds(self, now: datetime) -> int:
        if not self.active or self.started_at is None:
            return 0
        return elapsed_seconds(self.started_at, now)

    def switch_off(self, now: datetime) -> int:
        added = self.open_seconds(now)
        self.accumulated += added
        self.active = False
        self.started_at = None
        return added

    def total(self, now: datetime) -> int:
        return self.accumulated + self.open_seconds(now)


@dataclass(frozen=True)
class FeedingTotals:
    started_at: datetime
    ended_at: datetime
    elapsed: int
    left: int
    right: int
    total: int


@dataclass
class FeedingTimer:
    running: bool = False
    started_at: Optional[datetime] = None
    left: SideClock = field(default_factory=SideClock)
    right: SideClock = field(default_factory=SideClock)

    def clock_for(self, side: Side) -> SideClock:
        return self.left if Side(side) is Side.LEFT else self.right

    def start(self, now: datetime) -> None:
        if self.running:
            raise TimerStateError("Feeding timer is already running.")
        self.running = True
        self.started_at = now

    def _require_running(self) -> None:
        if not self.running or self.started_at is None:
            raise TimerStateError("Start the feeding timer first.")

    def toggle(self, side: Side, now: datetime) -> bool:
        """Flip one side; returns whether the side is now active."""

        self._require_running()
        clock = self.clock_for(side)
        if clock.active:
            clock.switch_off(now)
        else:
            clock.switch_on(now)
        return clock.active

    def toggle_both(self, now: datetime) -> bool:
        self._require_running()
        if self.left.active and self.right.active:
            self.left.switch_off(now)
            self.right.switch_off(now)
            return False
        for clock in (self.left, self.right):
            # an already-open side is closed out before sharing the new start
            if clock.active:
                clock.switch_off(now)
            clock.switch_on(now)
        return True

    def elapsed(self, now: datetime) -> int:
        if not self.running or self.started_at is None:
            return 0
        return elapsed_seconds(self.started_at, now)

    def totals(self, now: datetime) -> FeedingTotals:
        """Reconcile the session as if it stopped at ``now`` without mutating it."""

        self._require_running()
        elapsed = self.elapsed(now)
        left = self.left.total(now)
        right = self.right.total(now)
        if left == 0 and right == 0 and elapsed > 0:
            left = elapsed
        return FeedingTotals(
            started_at=self.started_at,
            ended_at=now,
            elapsed=elapsed,
            left=left,
            right=right,
            total=max(elapsed, left + right),
        )

    def stop(self, now: datetime) -> FeedingTotals:
        totals = self.totals(now)
        if totals.total == 0:
            raise EmptySessionError("Run the timer for a little while before saving.")
        return totals

    def reset(self) -> None:
        self.running = False
        self.started_at = None
        self.left = SideClock()
        self.right = SideClock()
