# ledger/services/periods.py
#
# Period Calendar
# Pure date arithmetic for the week / month / year timeframes used by every
# aggregated view: range computation, labels, navigation, cross-timeframe
# conversion and comparison windows. No I/O.
#
# Period keys:
#   month -> "YYYY-MM"
#   week  -> "YYYY-Www" (ISO week; week 1 contains Jan 4, weeks start on Monday)
#   year  -> "YYYY"
# A key of None means "the current period". A key that does not match the
# timeframe's format also resolves to the current period.

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from ledger.errors import ValidationError

TIMEFRAMES = ("week", "month", "year")

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_YEAR_RE = re.compile(r"^(\d{4})$")


@dataclass(frozen=True)
class DateRange:
    """Half-open calendar range [start, end)."""

    start: date
    end: date
    label: str = ""

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days


@dataclass(frozen=True)
class Period:
    """One concrete bucket of a trend series."""

    key: str
    label: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


# ---- Validation ----

def parse_timeframe(value: Optional[str], default: str = "month") -> str:
    tf = (value or default).strip().lower()
    if tf not in TIMEFRAMES:
        raise ValidationError(
            f"Invalid timeframe {value!r}; expected one of: {', '.join(TIMEFRAMES)}",
            field="timeframe",
        )
    return tf


def _check_timeframe(timeframe: str) -> None:
    if timeframe not in TIMEFRAMES:
        raise ValidationError(f"Invalid timeframe {timeframe!r}", field="timeframe")


# ---- Low-level helpers ----

def week_start(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


def iso_week_monday(year: int, week: int) -> date:
    """Monday of ISO week `week` of `year` (Jan 4 is always in week 1)."""
    return week_start(date(year, 1, 4)) + timedelta(weeks=week - 1)


def add_months(day: date, months: int) -> date:
    """First day of the month `months` away from the month containing `day`."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def shift_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def _short_date(day: date) -> str:
    return f"{day.strftime('%b')} {day.day}"


# ---- Period resolution ----

def period_start(timeframe: str, period_key: Optional[str], today: Optional[date] = None) -> date:
    """First day of the period identified by `period_key` (current if None/invalid)."""
    _check_timeframe(timeframe)
    today = today or date.today()
    key = (period_key or "").strip()

    if timeframe == "month":
        match = _MONTH_RE.match(key)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if year >= 1 and 1 <= month <= 12:
                return date(year, month, 1)
        return today.replace(day=1)

    if timeframe == "week":
        match = _WEEK_RE.match(key)
        if match:
            year, week = int(match.group(1)), int(match.group(2))
            if year >= 1 and 1 <= week <= 53:
                return iso_week_monday(year, week)
        return week_start(today)

    match = _YEAR_RE.match(key)
    if match and int(match.group(1)) >= 1:
        return date(int(match.group(1)), 1, 1)
    return date(today.year, 1, 1)


def shift_period_start(timeframe: str, start: date, n: int) -> date:
    """Start of the period `n` whole periods away from the one starting at `start`."""
    if timeframe == "month":
        return add_months(start, n)
    if timeframe == "week":
        return start + timedelta(weeks=n)
    return date(start.year + n, 1, 1)


def period_end(timeframe: str, start: date) -> date:
    """Exclusive end of the period starting at `start`."""
    return shift_period_start(timeframe, start, 1)


def period_key_for(timeframe: str, day: date) -> str:
    """Canonical key of the period containing `day`."""
    _check_timeframe(timeframe)
    if timeframe == "month":
        return f"{day.year:04d}-{day.month:02d}"
    if timeframe == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    return f"{day.year:04d}"


def range_label(timeframe: str, start: date, end: date) -> str:
    if timeframe == "month":
        return start.strftime("%B %Y")
    if timeframe == "week":
        return f"{_short_date(start)} - {_short_date(end - timedelta(days=1))}"
    return str(start.year)


def trend_label(timeframe: str, start: date) -> str:
    """Compact label used on chart axes: W04 / Jan / 2026."""
    if timeframe == "week":
        return f"W{start.isocalendar()[1]:02d}"
    if timeframe == "month":
        return start.strftime("%b")
    return str(start.year)


# ---- Public calendar operations ----

def date_range_for(timeframe: str, period_key: Optional[str], today: Optional[date] = None) -> DateRange:
    """
    Date range of a period. `end` is exclusive (start of the following period).

    >>> date_range_for("month", "2026-01")
    DateRange(start=datetime.date(2026, 1, 1), end=datetime.date(2026, 2, 1), label='January 2026')
    """
    start = period_start(timeframe, period_key, today)
    end = period_end(timeframe, start)
    return DateRange(start, end, range_label(timeframe, start, end))


def period_offset(timeframe: str, period_key: Optional[str], n: int, today: Optional[date] = None) -> str:
    """Key of the period `n` whole periods away (negative = earlier)."""
    start = period_start(timeframe, period_key, today)
    return period_key_for(timeframe, shift_period_start(timeframe, start, n))


def convert_period(
    from_timeframe: str,
    to_timeframe: str,
    period_key: Optional[str],
    today: Optional[date] = None,
) -> Optional[str]:
    """
    Re-express a period in another timeframe, anchored on the last day of the
    source period. March 2025 as a week becomes the ISO week holding Mar 31.
    """
    if period_key is None:
        return None
    _check_timeframe(to_timeframe)
    if from_timeframe == to_timeframe:
        return period_key
    source = date_range_for(from_timeframe, period_key, today)
    return period_key_for(to_timeframe, source.end - timedelta(days=1))


def is_current_period(timeframe: str, period_key: Optional[str], today: Optional[date] = None) -> bool:
    """Malformed keys resolve to the current period, as in `period_start`."""
    today = today or date.today()
    start = period_start(timeframe, period_key, today)
    return start == period_start(timeframe, None, today)


def previous_period_range(timeframe: str, period_key: Optional[str], today: Optional[date] = None) -> DateRange:
    """The calendar period right before the selected one (MoM / WoW / YoY)."""
    current = period_start(timeframe, period_key, today)
    start = shift_period_start(timeframe, current, -1)
    end = period_end(timeframe, start)
    return DateRange(start, end, range_label(timeframe, start, end))


def year_ago_range(timeframe: str, period_key: Optional[str], today: Optional[date] = None) -> DateRange:
    """
    The selected range moved back exactly one year. Shifting the resolved
    dates (not the key) keeps week ranges aligned across 52/53-week years.
    """
    current = date_range_for(timeframe, period_key, today)
    start = shift_years(current.start, -1)
    end = shift_years(current.end, -1)
    return DateRange(start, end, range_label(timeframe, start, end))


def periods_ending(
    timeframe: str,
    count: int,
    end_period: Optional[str] = None,
    today: Optional[date] = None,
) -> List[Period]:
    """
    `count` consecutive periods ending at `end_period` (inclusive), oldest first.
    """
    _check_timeframe(timeframe)
    if count < 1:
        raise ValidationError("count must be at least 1", field="count")

    last_start = period_start(timeframe, end_period, today)
    periods: List[Period] = []
    for i in range(count - 1, -1, -1):
        start = shift_period_start(timeframe, last_start, -i)
        periods.append(
            Period(
                key=period_key_for(timeframe, start),
                label=trend_label(timeframe, start),
                start=start,
                end=period_end(timeframe, start),
            )
        )
    return periods


def monthly_periods_between(start: date, end: date) -> List[Period]:
    """
    Month buckets covering [start, end). A month is included when it starts
    before `end`, so a partial trailing month is kept.
    """
    periods: List[Period] = []
    current = start.replace(day=1)
    while current < end:
        nxt = add_months(current, 1)
        periods.append(
            Period(
                key=period_key_for("month", current),
                label=trend_label("month", current),
                start=current,
                end=nxt,
            )
        )
        current = nxt
    return periods


def period_progress(range_: DateRange, today: Optional[date] = None) -> dict:
    """How far `today` is through the range: past = 100%, future = 0%."""
    today = today or date.today()
    total = range_.days
    if today >= range_.end:
        elapsed = total
    elif today < range_.start:
        elapsed = 0
    else:
        elapsed = (today - range_.start).days + 1
    percent = round(elapsed / total * 100) if total else 0
    return {"days_elapsed": elapsed, "days_total": total, "percent_complete": percent}
