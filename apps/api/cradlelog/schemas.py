"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FeedingType(str, Enum):
    BREAST = "breast"
    BOTTLE = "bottle"


class DiaperType(str, Enum):
    PEE = "pee"
    POOP = "poop"
    BOTH = "both"


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class FeedingRecord(BaseModel):
    id: str
    user_id: Optional[str] = None
    family_id: Optional[str] = None
    baby_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int = Field(description="Total seconds")
    left_duration: Optional[int] = Field(default=0, description="Seconds on the left side")
    right_duration: Optional[int] = Field(default=0, description="Seconds on the right side")
    note: Optional[str] = ""
    feeding_type: Optional[FeedingType] = None
    amount: Optional[float] = Field(default=None, description="Bottle volume in ml")
    left_side: Optional[bool] = None
    right_side: Optional[bool] = None
    created_at: Optional[datetime] = None


class DiaperRecord(BaseModel):
    id: str
    user_id: Optional[str] = None
    family_id: Optional[str] = None
    baby_id: Optional[str] = None
    time: datetime
    type: DiaperType
    note: Optional[str] = None


class SleepRecord(BaseModel):
    id: str
    user_id: Optional[str] = None
    family_id: Optional[str] = None
    baby_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, description="Seconds, set when sleep ends")
    note: Optional[str] = None
    baby_name: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None
