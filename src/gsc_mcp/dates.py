from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

DEFAULT_LOOKBACK_DAYS = 28

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def format_date(d: date) -> str:
    return d.isoformat()


def days_ago(days: int, *, today: Optional[date] = None) -> date:
    return (today or today_utc()) - timedelta(days=days)


def is_valid_date_string(value: str) -> bool:
    if not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_date_range(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    days: Optional[int] = None,
    *,
    today: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Resolve (start, end) as YYYY-MM-DD strings.

    Priority for the start: explicit start_date > days > 28 days back.
    The end defaults to today (UTC). Computing relative ranges here keeps
    callers from guessing the current date.
    """
    ref = today or today_utc()
    resolved_end = end_date or format_date(ref)

    if start_date:
        resolved_start = start_date
    elif days:
        resolved_start = format_date(days_ago(days, today=ref))
    else:
        resolved_start = format_date(days_ago(DEFAULT_LOOKBACK_DAYS, today=ref))

    return resolved_start, resolved_end
