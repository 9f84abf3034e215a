from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Tuple

from dateutil.relativedelta import relativedelta

from .models import InvalidRange, PeriodId, PeriodType, validate_period_type

WEEK_FMT = "{year}-W{week:02d}"
MONTH_FMT = "%Y-%m"

_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True)
class PeriodBounds:
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def iso_week_of(value: date) -> PeriodId:
    """Return the ISO-8601 week id (``YYYY-Www``) containing ``value``.

    The week is moved to its Thursday, so a week that straddles New Year
    belongs to the year its Thursday falls in.
    """
    thursday = value + timedelta(days=3 - value.weekday())
    first_thursday = date(thursday.year, 1, 4)
    first_thursday += timedelta(days=3 - first_thursday.weekday())
    week = 1 + (thursday - first_thursday).days // 7
    return WEEK_FMT.format(year=thursday.year, week=week)


def month_of(value: date) -> PeriodId:
    return value.strftime(MONTH_FMT)


def _parse_week(week_id: str) -> Tuple[int, int]:
    match = _WEEK_RE.match(week_id or "")
    if not match:
        raise ValueError(f"invalid ISO week id '{week_id}' (expected YYYY-Www)")
    year, week = int(match.group(1)), int(match.group(2))
    if not 1 <= week <= 53:
        raise ValueError(f"week number out of range in '{week_id}'")
    return year, week


def _parse_month(month_id: str) -> Tuple[int, int]:
    match = _MONTH_RE.match(month_id or "")
    if not match:
        raise ValueError(f"invalid month id '{month_id}' (expected YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range in '{month_id}'")
    return year, month


def week_bounds(week_id: PeriodId) -> PeriodBounds:
    year, week = _parse_week(week_id)
    jan4 = date(year, 1, 4)
    monday_week1 = jan4 - timedelta(days=jan4.weekday())
    start = monday_week1 + timedelta(weeks=week - 1)
    return PeriodBounds(start=start, end=start + timedelta(days=6))


def month_bounds(month_id: PeriodId) -> PeriodBounds:
    year, month = _parse_month(month_id)
    start = date(year, month, 1)
    end = start + relativedelta(months=1) - timedelta(days=1)
    return PeriodBounds(start=start, end=end)


def period_type_of(period_id: PeriodId) -> PeriodType:
    if _WEEK_RE.match(period_id or ""):
        return "week"
    if _MONTH_RE.match(period_id or ""):
        return "month"
    raise ValueError(f"unrecognised period id '{period_id}'")


def period_bounds(period_type: PeriodType, period_id: PeriodId) -> PeriodBounds:
    if validate_period_type(period_type) == "week":
        return week_bounds(period_id)
    return month_bounds(period_id)


def period_year(period_id: PeriodId) -> str:
    return period_id[:4]


def weeks_between(start: date, end: date) -> List[PeriodId]:
    """Every ISO week whose span intersects ``[start, end]``, oldest first."""
    if start > end:
        raise InvalidRange(start, end)
    current = start - timedelta(days=start.weekday())
    weeks: List[PeriodId] = []
    while current <= end:
        week_id = iso_week_of(current)
        if not weeks or weeks[-1] != week_id:
            weeks.append(week_id)
        current += timedelta(weeks=1)
    return weeks


def months_between(start: date, end: date) -> List[PeriodId]:
    if start > end:
        raise InvalidRange(start, end)
    current = date(start.year, start.month, 1)
    months: List[PeriodId] = []
    while current <= end:
        months.append(month_of(current))
        current += relativedelta(months=1)
    return months


def week_label(week_id: PeriodId) -> str:
    year, week = _parse_week(week_id)
    return f"{year} Week {week:02d}"


def week_column_label(week_id: PeriodId) -> str:
    # Columns are labelled with the Friday, the last working day of the week.
    friday = week_bounds(week_id).start + timedelta(days=4)
    return friday.strftime("%b %d")


def period_label(period_type: PeriodType, period_id: PeriodId) -> str:
    if validate_period_type(period_type) == "week":
        return week_label(period_id)
    return period_id
