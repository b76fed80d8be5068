"""Conversions between the two day-boundary conventions and ``DateRange``.

The calendar stores whole-day events with an exclusive end (a one-day event
on May 22nd ends on May 23rd) while Notion stores an inclusive end. Both
collaborators read and write through this module so ranges compare equal
once normalized.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from notioncal.models import DateRange, parse_iso_datetime, to_utc

ONE_DAY = timedelta(days=1)
DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def whole_day(value: date) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def whole_days(first_day: date, last_day: date | None = None) -> DateRange:
    start = whole_day(first_day)
    if last_day is None or last_day <= first_day:
        return DateRange(start=start, end=None, is_precise=False)
    return DateRange(start=start, end=whole_day(last_day), is_precise=False)


def precise(start: datetime, end: datetime | None = None) -> DateRange:
    start_utc = to_utc(start)
    end_utc = to_utc(end) if end is not None else None
    if end_utc is not None and end_utc == start_utc:
        end_utc = None
    return DateRange(start=start_utc, end=end_utc, is_precise=True)


def from_calendar(dtstart: date | datetime, dtend: date | datetime | None = None) -> DateRange:
    if isinstance(dtstart, datetime):
        end_dt = dtend if isinstance(dtend, datetime) else None
        return precise(dtstart, end_dt)
    if dtend is None:
        return whole_days(dtstart)
    end_day = dtend.date() if isinstance(dtend, datetime) else dtend
    return whole_days(dtstart, end_day - ONE_DAY)


def to_calendar(value: DateRange) -> tuple[date | datetime, date | datetime]:
    if value.is_precise:
        return value.start, value.end or value.start
    return value.first_day, value.last_day + ONE_DAY


def from_notion(payload: dict[str, Any] | None) -> DateRange | None:
    if not payload:
        return None
    start_text = str(payload.get("start") or "").strip()
    if not start_text:
        return None
    end_text = str(payload.get("end") or "").strip()
    if DATE_ONLY_PATTERN.match(start_text):
        first_day = date.fromisoformat(start_text)
        last_day = date.fromisoformat(end_text[:10]) if end_text else None
        return whole_days(first_day, last_day)
    start = parse_iso_datetime(start_text)
    end = parse_iso_datetime(end_text) if end_text else None
    return precise(start, end)


def to_notion(value: DateRange | None) -> dict[str, Any] | None:
    if value is None:
        return None
    if value.is_precise:
        return {
            "start": to_utc(value.start).isoformat(),
            "end": to_utc(value.end).isoformat() if value.end is not None else None,
            "time_zone": None,
        }
    return {
        "start": value.first_day.isoformat(),
        "end": value.end.date().isoformat() if value.end is not None else None,
        "time_zone": None,
    }
