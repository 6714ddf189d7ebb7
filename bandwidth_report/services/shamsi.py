"""Gregorian <-> Shamsi (Jalali) calendar conversion and formatting.

The conversions count days from a fixed epoch. Gregorian years follow the
4/100/400 leap rule; Shamsi years follow the arithmetic 33-year cycle with
eight leap years per cycle. Both directions use the same epoch offsets, so
every Gregorian date converts to Shamsi and back unchanged.

All functions here are pure. Anything that needs "today" takes an optional
reference date and normalizes it to a UTC calendar day first.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple, Union

DateLike = Union[date, datetime, str]

_GREGORIAN_DAYS_BEFORE_MONTH = [0, 31, 59, 90, 120, 151, 181, 212, 243, 273, 304, 334]
_SHAMSI_DAYS_IN_MONTH = [31, 31, 31, 31, 31, 31, 30, 30, 30, 30, 30, 29]

SHAMSI_MONTH_NAMES = [
    "فروردین",
    "اردیبهشت",
    "خرداد",
    "تیر",
    "مرداد",
    "شهریور",
    "مهر",
    "آبان",
    "آذر",
    "دی",
    "بهمن",
    "اسفند",
]

QUARTER_NAMES = {1: "بهار", 2: "تابستان", 3: "پاییز", 4: "زمستان"}

_MONTH_TO_QUARTER = {
    1: 1, 2: 1, 3: 1,
    4: 2, 5: 2, 6: 2,
    7: 3, 8: 3, 9: 3,
    10: 4, 11: 4, 12: 4,
}

_PERSIAN_DIGITS = str.maketrans("0123456789", "۰۱۲۳۴۵۶۷۸۹")

# Saturday opens the Shamsi week; date.weekday() numbers it 5.
_WEEK_START_WEEKDAY = 5


def is_gregorian_leap_year(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def _days_before_shamsi_year(jy: int) -> int:
    jy += 1595
    return 365 * jy + (jy // 33) * 8 + ((jy % 33) + 3) // 4


def is_shamsi_leap_year(jy: int) -> bool:
    """Return True when Esfand (month 12) of ``jy`` has 30 days."""
    return _days_before_shamsi_year(jy + 1) - _days_before_shamsi_year(jy) == 366


def shamsi_month_length(jy: int, jm: int) -> int:
    if jm == 12 and is_shamsi_leap_year(jy):
        return 30
    return _SHAMSI_DAYS_IN_MONTH[jm - 1]


def to_shamsi(gy: int, gm: int, gd: int) -> Tuple[int, int, int]:
    """Convert a Gregorian date to a Shamsi ``(year, month, day)`` tuple."""
    gy2 = gy + 1 if gm > 2 else gy
    days = (
        355666
        + 365 * gy
        + (gy2 + 3) // 4
        - (gy2 + 99) // 100
        + (gy2 + 399) // 400
        + gd
        + _GREGORIAN_DAYS_BEFORE_MONTH[gm - 1]
    )

    jy = -1595 + 33 * (days // 12053)
    days %= 12053
    jy += 4 * (days // 1461)
    days %= 1461
    if days > 365:
        jy += (days - 1) // 365
        days = (days - 1) % 365

    if days < 186:
        jm = 1 + days // 31
        jd = 1 + days % 31
    else:
        jm = 7 + (days - 186) // 30
        jd = 1 + (days - 186) % 30
    return jy, jm, jd


def from_shamsi(jy: int, jm: int, jd: int) -> Tuple[int, int, int]:
    """Convert a Shamsi date to a Gregorian ``(year, month, day)`` tuple."""
    if jm < 7:
        days_before_month = (jm - 1) * 31
    else:
        days_before_month = (jm - 7) * 30 + 186
    days = -355668 + _days_before_shamsi_year(jy) + jd + days_before_month

    gy = 400 * (days // 146097)
    days %= 146097
    if days > 36524:
        days -= 1
        gy += 100 * (days // 36524)
        days %= 36524
        if days >= 365:
            days += 1
    gy += 4 * (days // 1461)
    days %= 1461
    if days > 365:
        gy += (days - 1) // 365
        days = (days - 1) % 365

    gd = days + 1
    month_lengths = [
        0, 31, 29 if is_gregorian_leap_year(gy) else 28,
        31, 30, 31, 30, 31, 31, 30, 31, 30, 31,
    ]
    gm = 0
    while gm < 13 and gd > month_lengths[gm]:
        gd -= month_lengths[gm]
        gm += 1
    return gy, gm, gd


def shamsi_to_date(jy: int, jm: int, jd: int) -> date:
    return date(*from_shamsi(jy, jm, jd))


def date_to_shamsi(value: date) -> Tuple[int, int, int]:
    return to_shamsi(value.year, value.month, value.day)


def parse_iso_date(value: str) -> date:
    """Parse a ``yyyy-MM-dd`` string; raises ValueError when malformed."""
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def format_shamsi_date(value: Optional[Union[date, str]]) -> str:
    """Format a Gregorian date as a Shamsi ``YYYY/MM/DD`` string.

    Empty or malformed input yields an empty string instead of raising, so a
    single bad record only blanks its own cell.
    """
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = parse_iso_date(value)
        except ValueError:
            return ""
    elif isinstance(value, datetime):
        value = value.date()
    elif not isinstance(value, date):
        return ""
    jy, jm, jd = date_to_shamsi(value)
    return f"{jy}/{jm:02d}/{jd:02d}"


def to_persian_digits(value) -> str:
    """Replace ASCII digits with Persian digits; ``None`` becomes ``""``."""
    if value is None:
        return ""
    return str(value).translate(_PERSIAN_DIGITS)


def shamsi_month_name(jm: int) -> str:
    return SHAMSI_MONTH_NAMES[jm - 1]


def quarter_of_month(jm: int) -> int:
    return _MONTH_TO_QUARTER[jm]


def quarter_name(quarter: int) -> str:
    return QUARTER_NAMES[quarter]


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def to_utc_date(reference: Optional[DateLike] = None) -> date:
    """Truncate a reference point to its UTC calendar day.

    Aware datetimes are converted to UTC first; naive datetimes are taken
    to already be in UTC. ``None`` means the current UTC day.
    """
    if reference is None:
        return utc_today()
    if isinstance(reference, str):
        return parse_iso_date(reference)
    if isinstance(reference, datetime):
        if reference.tzinfo is not None:
            reference = reference.astimezone(timezone.utc)
        return reference.date()
    return reference


def start_of_shamsi_week(reference: Optional[DateLike] = None) -> date:
    """Gregorian date of the Saturday that opens the reference day's week."""
    day = to_utc_date(reference)
    days_since_start = (day.weekday() - _WEEK_START_WEEKDAY) % 7
    return day - timedelta(days=days_since_start)


def start_of_shamsi_months_ago(months_ago: int, reference: Optional[DateLike] = None) -> date:
    """Gregorian date of day 1 of the Shamsi month ``months_ago`` months back."""
    day = to_utc_date(reference)
    jy, jm, _ = date_to_shamsi(day)
    jm -= months_ago
    while jm < 1:
        jm += 12
        jy -= 1
    return shamsi_to_date(jy, jm, 1)


def start_of_shamsi_month(reference: Optional[DateLike] = None) -> date:
    return start_of_shamsi_months_ago(0, reference)
