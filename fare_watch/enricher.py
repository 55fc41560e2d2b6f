"""Absolute date-time enrichment for fares that only carry clock times."""

import re
from dataclasses import replace
from datetime import date, timedelta

from fare_watch.models import FareRecord

_CLOCK_RE = re.compile(r"^(\d{2}):(\d{2})$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_minutes(hhmm: str | None) -> int | None:
    """Minute of day for ``HH:MM``, or None when malformed."""
    match = _CLOCK_RE.match(hhmm or "")
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def add_days(date_str: str, days: int) -> str:
    """Shift an ISO date by ``days``; invalid input is returned unchanged."""
    if not _DATE_RE.match(date_str or ""):
        return date_str
    try:
        day = date.fromisoformat(date_str)
    except ValueError:
        return date_str
    return (day + timedelta(days=days)).isoformat()


def enrich(record: FareRecord, base_date: str) -> FareRecord:
    """
    Attach ``dep_datetime``/``arr_datetime`` to a fare departing on ``base_date``.

    An arrival clock time earlier than the departure clock time lands on the
    next day. Only a single rollover is detected. Malformed clock times or a
    malformed base date leave the record unchanged.
    """
    dep_minutes = to_minutes(record.dep)
    arr_minutes = to_minutes(record.arr)
    if dep_minutes is None or arr_minutes is None:
        return record
    next_day = add_days(base_date, 1)
    if next_day == base_date:
        return record

    arr_date = next_day if arr_minutes < dep_minutes else base_date
    return replace(
        record,
        dep_datetime=f"{base_date} {record.dep}",
        arr_datetime=f"{arr_date} {record.arr}",
    )
