from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..errors import SessionError
from ..feeding_session import FeedingSession
from ..records import RecordStore
from ..schemas import FeedingRecord, Side
from ..sessions import SessionRegistry, get_registry
from ..supabase import AuthContext, get_auth_context, resolve_baby_id
from ..time_format import format_clock

router = APIRouter(prefix="/api/v1/feedings", tags=["feedings"])
logger = logging.getLogger(__name__)


class SideChoice(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"


class TimerOut(BaseModel):
    running: bool
    started_at: Optional[datetime] = None
    left_active: bool = False
    right_active: bool = False
    left_seconds: int = 0
    right_seconds: int = 0
    elapsed_seconds: int = 0
    elapsed_label: str = "00:00"
    baby_id: Optional[str] = None
    note: str = ""
    saving: bool = False


class StartTimerPayload(BaseModel):
    baby_id: Optional[str] = None
    note: Optional[str] = None


class StopTimerPayload(BaseModel):
    baby_id: Optional[str] = None
    note: Optional[str] = None


def _timer_out(session: FeedingSession, now: datetime) -> TimerOut:
    timer = session.timer
    elapsed = timer.elapsed(now)
    return TimerOut(
        running=timer.running,
        started_at=timer.started_at,
        left_active=timer.left.active,
        right_active=timer.right.active,
        left_seconds=timer.left.total(now),
        right_seconds=timer.right.total(now),
        elapsed_seconds=elapsed,
        # Label advances with the display ticker.
        elapsed_label=format_clock(session.display_elapsed),
        baby_id=session.baby_id,
        note=session.note,
        saving=session.saving,
    )


@router.get("/timer", response_model=TimerOut)
async def get_timer(
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> TimerOut:
    return _timer_out(sessions.feeding(auth), sessions.clock())


@router.post("/timer/start", response_model=TimerOut)
async def start_timer(
    payload: StartTimerPayload,
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> TimerOut:
    session = sessions.feeding(auth)
    now = sessions.clock()
    try:
        session.start(now, baby_id=resolve_baby_id(payload.baby_id), note=payload.note)
    except SessionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return _timer_out(session, now)


@router.post("/timer/sides/{side}/toggle", response_model=TimerOut)
async def toggle_side(
    side: SideChoice,
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> TimerOut:
    session = sessions.feeding(auth)
    now = sessions.clock()
    try:
        if side is SideChoice.BOTH:
            session.toggle_both(now)
        else:
            session.toggle(Side(side.value), now)
    except SessionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return _timer_out(session, now)


@router.post("/timer/stop", response_model=FeedingRecord)
async def stop_timer(
    payload: StopTimerPayload,
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> FeedingRecord:
    """Stop the running session and save it as a breastfeeding record."""

    session = sessions.feeding(auth)
    try:
        record = await session.save(
            RecordStore(auth),
            sessions.clock(),
            baby_id=resolve_baby_id(payload.baby_id),
            note=payload.note,
        )
    except SessionError as exc:
        logger.info(
            "feeding save refused",
            extra={"user_id": auth.user_id, "reason": str(exc)},
        )
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    sessions.release(auth)
    return record
