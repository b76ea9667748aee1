from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..analytics import build_summary
from ..config import CONFIG
from ..records import RecordStore
from ..sessions import SessionRegistry, get_registry
from ..supabase import AuthContext, get_auth_context

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)


@router.get("/summary")
async def analytics_summary(
    days: Optional[int] = Query(None, ge=1, le=366, description="Trailing window in days"),
    timezone: Optional[str] = Query(None, description="IANA zone for day boundaries"),
    auth: AuthContext = Depends(get_auth_context),
    sessions: SessionRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    window = days or CONFIG.analytics_window_days
    try:
        tz = ZoneInfo(timezone or CONFIG.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="Unknown timezone.") from exc

    now = sessions.clock()
    today = now.astimezone(tz).date()
    start = datetime.combine(today - timedelta(days=window - 1), time.min, tzinfo=tz)

    store = RecordStore(auth)
    feedings = await store.list_feedings(start, now)
    diapers = await store.list_diapers(start, now)
    sleeps = await store.list_sleeps(start, now)
    logger.info(
        "analytics summary",
        extra={
            "family_id": auth.family_id,
            "days": window,
            "feedings": len(feedings),
            "diapers": len(diapers),
            "sleeps": len(sleeps),
        },
    )
    return build_summary(feedings, diapers, sleeps, today=today, days=window, tz=tz)
