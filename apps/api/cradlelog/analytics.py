"""Daily aggregate statistics over feeding, diaper and sleep records."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Sequence, TypeVar
from zoneinfo import ZoneInfo

from .schemas import DiaperRecord, DiaperType, FeedingRecord, FeedingType, SleepRecord
from .time_format import format_hours_minutes

T = TypeVar("T")


def local_day(value: datetime, tz: ZoneInfo) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()


def trailing_days(today: date, days: int) -> List[date]:
    """The last ``days`` calendar days ending with ``today``, oldest first."""

    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def group_by_day(
    items: Iterable[T], key: Callable[[T], datetime], tz: ZoneInfo
) -> Dict[date, List[T]]:
    groups: Dict[date, List[T]] = defaultdict(list)
    for item in items:
        groups[local_day(key(item), tz)].append(item)
    return groups


def _sleep_hours(record: SleepRecord) -> float:
    if record.end_time is None:
        return 0.0
    return max(0.0, (record.end_time - record.start_time).total_seconds() / 3600)


def feeding_stats(
    records: Sequence[FeedingRecord], days: Sequence[date], tz: ZoneInfo
) -> List[Dict[str, Any]]:
    grouped = group_by_day(records, lambda r: r.start_time, tz)
    stats = []
    for day in days:
        rows = grouped.get(day, [])
        total_seconds = sum(r.duration for r in rows)
        bottles = [r for r in rows if r.feeding_type == FeedingType.BOTTLE]
        bottle_total = sum(r.amount or 0 for r in bottles)
        stats.append(
            {
                "date": day.isoformat(),
                "count": len(rows),
                "total_minutes": round(total_seconds / 60),
                "avg_minutes": round(total_seconds / len(rows) / 60, 2) if rows else 0,
                "bottle_total_ml": bottle_total,
                "bottle_avg_ml": round(bottle_total / len(bottles), 2) if bottles else 0,
            }
        )
    return stats


def diaper_stats(
    records: Sequence[DiaperRecord], days: Sequence[date], tz: ZoneInfo
) -> List[Dict[str, Any]]:
    grouped = group_by_day(records, lambda r: r.time, tz)
    stats = []
    for day in days:
        rows = grouped.get(day, [])
        stats.append(
            {
                "date": day.isoformat(),
                "pee": sum(1 for r in rows if r.type == DiaperType.PEE),
                "poop": sum(1 for r in rows if r.type == DiaperType.POOP),
                "both": sum(1 for r in rows if r.type == DiaperType.BOTH),
                "total": len(rows),
            }
        )
    return stats


def sleep_stats(
    records: Sequence[SleepRecord], days: Sequence[date], tz: ZoneInfo
) -> List[Dict[str, Any]]:
    grouped = group_by_day(records, lambda r: r.start_time, tz)
    stats = []
    for day in days:
        rows = grouped.get(day, [])
        completed = [r for r in rows if r.end_time is not None]
        total_hours = sum(_sleep_hours(r) for r in completed)
        stats.append(
            {
                "date": day.isoformat(),
                "count": len(rows),
                "total_hours": round(total_hours, 2),
                "total_minutes": round(total_hours * 60),
                "total_label": format_hours_minutes(round(total_hours * 3600)),
                "avg_hours": round(total_hours / len(completed), 2) if completed else 0,
            }
        )
    return stats


def overall_totals(
    feedings: Sequence[FeedingRecord],
    diapers: Sequence[DiaperRecord],
    sleeps: Sequence[SleepRecord],
) -> Dict[str, Dict[str, Any]]:
    completed = [r for r in sleeps if r.end_time is not None]
    sleep_hours = sum(_sleep_hours(r) for r in completed)
    feeding_seconds = sum(r.duration for r in feedings)
    return {
        "feeding": {
            "total": len(feedings),
            "avg_minutes": round(feeding_seconds / len(feedings) / 60, 2) if feedings else 0,
        },
        "diaper": {
            "total": len(diapers),
            "pee": sum(1 for r in diapers if r.type == DiaperType.PEE),
            "poop": sum(1 for r in diapers if r.type == DiaperType.POOP),
            "both": sum(1 for r in diapers if r.type == DiaperType.BOTH),
        },
        "sleep": {
            "total": len(sleeps),
            "avg_hours": round(sleep_hours / len(completed), 2) if completed else 0,
        },
    }


def build_summary(
    feedings: Sequence[FeedingRecord],
    diapers: Sequence[DiaperRecord],
    sleeps: Sequence[SleepRecord],
    *,
    today: date,
    days: int,
    tz: ZoneInfo,
) -> Dict[str, Any]:
    window = trailing_days(today, days)
    return {
        "window_days": days,
        "timezone": str(tz),
        "feeding": feeding_stats(feedings, window, tz),
        "diaper": diaper_stats(diapers, window, tz),
        "sleep": sleep_stats(sleeps, window, tz),
        "totals": overall_totals(feedings, diapers, sleeps),
    }
