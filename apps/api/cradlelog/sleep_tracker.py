"""Per-child sleep tracking over open-interval records.

A child is either :class:`Awake` or :class:`Sleeping`. Starting sleep creates
a backend record with no end time; ending sleep closes that same record in
place. Transition functions are pure given ``now``; :class:`SleepSession`
wires them to the backend and keeps the per-child map.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Union

from .errors import SaveInProgressError, SleepStateError
from .feeding_timer import elapsed_seconds
from .schemas import SleepRecord
from .ticker import Ticker
from .time_format import format_duration

logger = logging.getLogger(__name__)

UNKNOWN_BABY = "unknown"


@dataclass(frozen=True)
class Awake:
    baby_name: Optional[str] = None

    @property
    def is_sleeping(self) -> bool:
        return False


@dataclass(frozen=True)
class Sleeping:
    start_time: datetime
    record_id: str
    baby_name: Optional[str] = None
    note: str = ""

    @property
    def is_sleeping(self) -> bool:
        return True


SleepState = Union[Awake, Sleeping]


@dataclass(frozen=True)
class SleepClosure:
    end_time: datetime
    duration: int


def begin_sleep(
    state: SleepState,
    *,
    now: datetime,
    record_id: str,
    baby_name: Optional[str] = None,
    note: str = "",
) -> Sleeping:
    if isinstance(state, Sleeping):
        raise SleepStateError("This baby is already sleeping.")
    return Sleeping(
        start_time=now,
        record_id=record_id,
        baby_name=baby_name or state.baby_name,
        note=note,
    )


def close_sleep(state: SleepState, now: datetime) -> SleepClosure:
    if not isinstance(state, Sleeping):
        raise SleepStateError("This baby has no sleep in progress.")
    return SleepClosure(end_time=now, duration=elapsed_seconds(state.start_time, now))


def sleeping_seconds(state: SleepState, now: datetime) -> int:
    if not isinstance(state, Sleeping):
        return 0
    return elapsed_seconds(state.start_time, now)


class SleepTracker:
    def __init__(self, statuses: Optional[Dict[str, SleepState]] = None) -> None:
        self.statuses: Dict[str, SleepState] = dict(statuses or {})

    def state(self, baby_id: str) -> SleepState:
        return self.statuses.get(baby_id, Awake())

    def is_sleeping(self, baby_id: str) -> bool:
        return self.state(baby_id).is_sleeping

    def has_sleeping(self) -> bool:
        return any(state.is_sleeping for state in self.statuses.values())

    def ensure_can_start(self, baby_id: str) -> None:
        if self.is_sleeping(baby_id):
            raise SleepStateError("This baby is already sleeping.")

    def set(self, baby_id: str, state: SleepState) -> None:
        self.statuses[baby_id] = state

    def rehydrate(self, records: Iterable[SleepRecord]) -> None:
        """Rebuild the map from open records, newest start first."""

        statuses: Dict[str, SleepState] = {}
        for record in sorted(records, key=lambda r: r.start_time, reverse=True):
            if not record.is_open:
                continue
            baby_id = record.baby_id or UNKNOWN_BABY
            if baby_id in statuses:
                logger.warning(
                    "multiple open sleep records for one baby",
                    extra={"baby_id": baby_id, "record_id": record.id},
                )
                continue
            statuses[baby_id] = Sleeping(
                start_time=record.start_time,
                record_id=record.id,
                baby_name=record.baby_name,
                note=record.note or "",
            )
        self.statuses = statuses


class SleepStore(Protocol):
    async def create_sleep(
        self, *, baby_id: str, start_time: datetime, note: Optional[str] = None
    ) -> SleepRecord: ...

    async def close_sleep(
        self, record_id: str, *, end_time: datetime, duration: int, note: Optional[str] = None
    ) -> SleepRecord: ...

    async def list_open_sleeps(self) -> List[SleepRecord]: ...


class SleepSession:
    def __init__(
        self,
        *,
        clock: Callable[[], datetime],
        tracker: Optional[SleepTracker] = None,
        ticker_factory: Optional[Callable[[Callable[[], None]], Ticker]] = None,
    ) -> None:
        self.tracker = tracker or SleepTracker()
        self.busy = False
        self.loaded = False
        self._clock = clock
        self.display: Dict[str, str] = {}
        self.ticker = (ticker_factory or Ticker)(self.refresh_display)

    def refresh_display(self) -> None:
        now = self._clock()
        self.display = {
            baby_id: format_duration(sleeping_seconds(state, now))
            for baby_id, state in self.tracker.statuses.items()
            if state.is_sleeping
        }

    def _sync_ticker(self) -> None:
        self.ticker.sync(self.tracker.has_sleeping())

    def _claim(self) -> None:
        if self.busy:
            raise SaveInProgressError("A sleep update is already in progress.")
        self.busy = True

    async def ensure_loaded(self, store: SleepStore) -> None:
        if not self.loaded:
            await self.load(store)

    async def load(self, store: SleepStore) -> Dict[str, SleepState]:
        records = await store.list_open_sleeps()
        self.tracker.rehydrate(records)
        self.loaded = True
        self.refresh_display()
        self._sync_ticker()
        return self.tracker.statuses

    async def start(
        self,
        store: SleepStore,
        baby_id: str,
        *,
        now: datetime,
        baby_name: Optional[str] = None,
        note: Optional[str] = None,
    ) -> SleepRecord:
        await self.ensure_loaded(store)
        self.tracker.ensure_can_start(baby_id)
        self._claim()
        try:
            record = await store.create_sleep(baby_id=baby_id, start_time=now, note=note)
        finally:
            self.busy = False
        self.tracker.set(
            baby_id,
            begin_sleep(
                self.tracker.state(baby_id),
                now=now,
                record_id=record.id,
                baby_name=baby_name,
                note=(note or "").strip(),
            ),
        )
        self.refresh_display()
        self._sync_ticker()
        logger.info("sleep started", extra={"baby_id": baby_id, "record_id": record.id})
        return record

    async def end(
        self,
        store: SleepStore,
        baby_id: str,
        *,
        now: datetime,
        note: Optional[str] = None,
    ) -> SleepRecord:
        await self.ensure_loaded(store)
        state = self.tracker.state(baby_id)
        closure = close_sleep(state, now)
        self._claim()
        try:
            record = await store.close_sleep(
                state.record_id,
                end_time=closure.end_time,
                duration=closure.duration,
                note=note,
            )
        except Exception:
            logger.warning(
                "sleep end failed; baby still marked sleeping",
                extra={"baby_id": baby_id, "record_id": state.record_id},
            )
            raise
        finally:
            self.busy = False
        self.tracker.set(baby_id, Awake(baby_name=state.baby_name))
        self.display.pop(baby_id, None)
        self._sync_ticker()
        logger.info(
            "sleep ended",
            extra={"baby_id": baby_id, "record_id": record.id, "duration": closure.duration},
        )
        return record
