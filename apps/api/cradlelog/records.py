"""Supabase-backed persistence for care records.

Writes are scoped to the caller's family and user; every helper goes through
the row-level-security client carried on the :class:`AuthContext`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from .schemas import DiaperRecord, FeedingRecord, FeedingType, SleepRecord
from .supabase import AuthContext

FEEDING_TABLE = "feeding_records"
DIAPER_TABLE = "diaper_records"
SLEEP_TABLE = "sleep_records"

SLEEP_FIELDS = "id,user_id,family_id,baby_id,start_time,end_time,duration,note"


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _range_filter(column: str, start: datetime, end: datetime) -> str:
    return f"({column}.gte.{_iso(start)},{column}.lte.{_iso(end)})"


def _sleep_from_row(row: Dict[str, Any]) -> SleepRecord:
    data = dict(row)
    baby = data.pop("baby_profiles", None)
    if isinstance(baby, dict):
        data["baby_name"] = baby.get("name")
    return SleepRecord.model_validate(data)


@dataclass
class FeedingDraft:
    baby_id: str
    start_time: datetime
    end_time: datetime
    duration: int
    left_duration: int = 0
    right_duration: int = 0
    note: str = ""
    feeding_type: FeedingType = FeedingType.BREAST
    amount: Optional[float] = None

    def to_row(self, *, user_id: str, family_id: str) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "family_id": family_id,
            "baby_id": self.baby_id,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "duration": self.duration,
            "left_duration": self.left_duration,
            "right_duration": self.right_duration,
            "left_side": self.left_duration > 0,
            "right_side": self.right_duration > 0,
            "note": self.note.strip(),
            "feeding_type": self.feeding_type.value,
            "amount": self.amount,
        }


class RecordStore:
    def __init__(self, auth: AuthContext) -> None:
        self.auth = auth
        self.supabase = auth.supabase

    def _scope(self) -> Dict[str, Any]:
        return {"user_id": self.auth.user_id, "family_id": self.auth.family_id}

    async def create_feeding(self, draft: FeedingDraft) -> FeedingRecord:
        rows = await self.supabase.insert(FEEDING_TABLE, draft.to_row(**self._scope()))
        if not rows:
            raise HTTPException(status_code=502, detail="Supabase returned no feeding record.")
        return FeedingRecord.model_validate(rows[0])

    async def create_sleep(
        self,
        *,
        baby_id: str,
        start_time: datetime,
        note: Optional[str] = None,
    ) -> SleepRecord:
        payload = {
            **self._scope(),
            "baby_id": baby_id,
            "start_time": _iso(start_time),
            "end_time": None,
            "duration": None,
            "note": (note or "").strip() or None,
        }
        rows = await self.supabase.insert(SLEEP_TABLE, payload)
        if not rows:
            raise HTTPException(status_code=502, detail="Supabase returned no sleep record.")
        return _sleep_from_row(rows[0])

    async def close_sleep(
        self,
        record_id: str,
        *,
        end_time: datetime,
        duration: int,
        note: Optional[str] = None,
    ) -> SleepRecord:
        payload: Dict[str, Any] = {"end_time": _iso(end_time), "duration": duration}
        if note is not None:
            payload["note"] = note.strip() or None
        rows = await self.supabase.update(
            SLEEP_TABLE,
            payload,
            params={"id": f"eq.{record_id}", "family_id": f"eq.{self.auth.family_id}"},
        )
        if not rows:
            raise HTTPException(status_code=404, detail="Sleep record not found.")
        return _sleep_from_row(rows[0])

    async def list_open_sleeps(self) -> List[SleepRecord]:
        rows = await self.supabase.select(
            SLEEP_TABLE,
            params={
                "select": f"{SLEEP_FIELDS},baby_profiles(name)",
                "user_id": f"eq.{self.auth.user_id}",
                "end_time": "is.null",
                "order": "start_time.desc",
            },
        )
        return [_sleep_from_row(row) for row in rows]

    async def list_feedings(self, start: datetime, end: datetime) -> List[FeedingRecord]:
        rows = await self.supabase.select(
            FEEDING_TABLE,
            params={
                "select": "*",
                "family_id": f"eq.{self.auth.family_id}",
                "and": _range_filter("start_time", start, end),
                "order": "start_time.desc",
            },
        )
        return [FeedingRecord.model_validate(row) for row in rows]

    async def list_diapers(self, start: datetime, end: datetime) -> List[DiaperRecord]:
        rows = await self.supabase.select(
            DIAPER_TABLE,
            params={
                "select": "*",
                "family_id": f"eq.{self.auth.family_id}",
                "and": _range_filter("time", start, end),
                "order": "time.desc",
            },
        )
        return [DiaperRecord.model_validate(row) for row in rows]

    async def list_sleeps(self, start: datetime, end: datetime) -> List[SleepRecord]:
        rows = await self.supabase.select(
            SLEEP_TABLE,
            params={
                "select": SLEEP_FIELDS,
                "family_id": f"eq.{self.auth.family_id}",
                "and": _range_filter("start_time", start, end),
                "order": "start_time.desc",
            },
        )
        return [_sleep_from_row(row) for row in rows]
