"""Financial month arithmetic.

A financial month starts on a configurable day of the month instead of the
1st. When the start day does not exist in a month (31 in April, 30 in
February) it is clamped to that month's last day, so consecutive financial
months always tile the calendar with no gaps or overlaps.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

import pandas as pd

from . import config
from .errors import require_start_day

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def effective_start_day(year: int, month: int, start_day: int) -> int:
    """Start day actually used for ``year``/``month`` after clamping."""
    require_start_day(start_day)
    return min(start_day, calendar.monthrange(year, month)[1])


def financial_month_start(value: DateLike, start_day: int) -> datetime:
    """Midnight of the first day of the financial month containing ``value``."""
    day = _as_date(value)
    if day.day >= effective_start_day(day.year, day.month, start_day):
        year, month = day.year, day.month
    else:
        year, month = _shift_month(day.year, day.month, -1)
    return datetime(year, month, effective_start_day(year, month, start_day))


def financial_month_end(value: DateLike, start_day: int) -> datetime:
    """Last instant (23:59:59.999999) of the financial month containing ``value``."""
    start = financial_month_start(value, start_day)
    year, month = _shift_month(start.year, start.month, 1)
    next_start = datetime(year, month, effective_start_day(year, month, start_day))
    return next_start - timedelta(microseconds=1)


def financial_month_days(value: DateLike, start_day: int) -> List[date]:
    """Every calendar day of the financial month, in order."""
    start = financial_month_start(value, start_day)
    end = financial_month_end(value, start_day)
    return [ts.date() for ts in pd.date_range(start.date(), end.date(), freq='D')]


def financial_month_boundaries(
    value: DateLike,
    start_day: int,
    tz: Optional[str] = None,
) -> Dict[str, object]:
    """Start/end datetimes plus the matching unix-second range.

    The timestamps are inclusive on both ends and are computed in ``tz``
    (defaults to the configured timezone), which is how statement requests
    are windowed.
    """
    zone = ZoneInfo(tz or config.TIMEZONE)
    start = financial_month_start(value, start_day)
    end = financial_month_end(value, start_day)
    return {
        'start': start,
        'end': end,
        'from_ts': int(start.replace(tzinfo=zone).timestamp()),
        'to_ts': int(end.replace(tzinfo=zone).timestamp()),
    }


def is_same_financial_month(first: DateLike, second: DateLike, start_day: int) -> bool:
    return financial_month_start(first, start_day) == financial_month_start(second, start_day)


def is_current_financial_month(
    selected: DateLike,
    start_day: int,
    today: Optional[DateLike] = None,
) -> bool:
    reference = today if today is not None else date.today()
    return is_same_financial_month(selected, reference, start_day)
