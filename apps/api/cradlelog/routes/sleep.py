from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..errors import SessionError
from ..records import RecordStore
from ..schemas import SleepRecord
from ..sessions import SessionRegistry, get_registry
from ..sleep_tracker import Sleeping, sleeping_seconds
from ..supabase import AuthContext, get_auth_context, resolve_baby_id

router = APIRouter(prefix="/api/v1/sleep", tags=["sleep"])
logger = logging.getLogger(__name__)


class SleepStatusOut(BaseModel):
    baby_id: str
    baby_name: Optional[str] = None
    is_sleeping: bool
    start_time: Optional[datetime] = None
    record_id: Optional[str] = None
    elapsed_seconds: int = 0
    elapsed_label: str = ""
    note: str = ""


class SleepStartPayload(BaseModel):
    baby_name: Optional[str] = None
    note: Optional[str] = None


class SleepEndPayload(BaseModel):
    note: Optional[str] = None


@router.get("", response_model=List[SleepStatusOut])
async def list_sleep_statuses(
    refresh: bool = Query(False, description="Re-read open sleep records from the backend."),
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> List[SleepStatusOut]:
    """Rehydrate open sleep intervals for this account and report each child."""

    session = sessions.sleep(auth)
    if refresh:
        await session.load(RecordStore(auth))
    else:
        await session.ensure_loaded(RecordStore(auth))
    statuses = session.tracker.statuses
    now = sessions.clock()
    result: List[SleepStatusOut] = []
    for baby_id, state in statuses.items():
        if isinstance(state, Sleeping):
            elapsed = sleeping_seconds(state, now)
            result.append(
                SleepStatusOut(
                    baby_id=baby_id,
                    baby_name=state.baby_name,
                    is_sleeping=True,
                    start_time=state.start_time,
                    record_id=state.record_id,
                    elapsed_seconds=elapsed,
                    elapsed_label=session.display.get(baby_id, ""),
                    note=state.note,
                )
            )
        else:
            result.append(
                SleepStatusOut(baby_id=baby_id, baby_name=state.baby_name, is_sleeping=False)
            )
    logger.info(
        "sleep status query",
        extra={"user_id": auth.user_id, "children": len(result)},
    )
    return result


@router.post("/{baby_id}/start", response_model=SleepRecord)
async def start_sleep(
    baby_id: str,
    payload: SleepStartPayload,
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> SleepRecord:
    resolved = resolve_baby_id(baby_id, required=True)
    session = sessions.sleep(auth)
    try:
        return await session.start(
            RecordStore(auth),
            resolved,
            now=sessions.clock(),
            baby_name=payload.baby_name,
            note=payload.note,
        )
    except SessionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.post("/{baby_id}/end", response_model=SleepRecord)
async def end_sleep(
    baby_id: str,
    payload: SleepEndPayload,
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> SleepRecord:
    resolved = resolve_baby_id(baby_id, required=True)
    session = sessions.sleep(auth)
    try:
        record = await session.end(
            RecordStore(auth),
            resolved,
            now=sessions.clock(),
            note=payload.note,
        )
    except SessionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    sessions.release(auth)
    return record
