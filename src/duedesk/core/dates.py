"""Pure civil-date calculus - no I/O dependencies.

All due and start dates are civil dates (no time of day) anchored to the
firm's single time zone. Display format is DD-MM-YYYY, storage format is
YYYY-MM-DD.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from .errors import InvalidDateFormat, InvalidInput

DISPLAY_FORMAT = "%d-%m-%Y"
STORAGE_FORMAT = "%Y-%m-%d"
DEFAULT_ZONE = "Asia/Kolkata"

_DMY_RE = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")
_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class Recurrence(str, Enum):
    """Recurrence unit of a task template."""

    AD_HOC = "AD_HOC"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    BIMONTHLY = "BIMONTHLY"
    QUARTERLY = "QUARTERLY"
    HALF_YEARLY = "HALF_YEARLY"
    YEARLY = "YEARLY"

    @classmethod
    def parse(cls, value: "str | Recurrence | None") -> "Recurrence":
        """Parse a recurrence unit, rejecting unknown names."""
        if isinstance(value, Recurrence):
            return value
        raw = str(value or "AD_HOC").strip().upper().replace("-", "_").replace(" ", "_")
        if raw in ("NONE", "ADHOC"):
            raw = "AD_HOC"
        try:
            return cls(raw)
        except ValueError:
            raise InvalidInput(f"Unknown recurrence unit: {value!r}", field="recurrence") from None


# Day-based units: days per step
_DAY_STEPS = {
    Recurrence.DAILY: 1,
    Recurrence.WEEKLY: 7,
    Recurrence.BIWEEKLY: 14,
}

# Month-based units: months per step
_MONTH_STEPS = {
    Recurrence.MONTHLY: 1,
    Recurrence.BIMONTHLY: 2,
    Recurrence.QUARTERLY: 3,
    Recurrence.HALF_YEARLY: 6,
    Recurrence.YEARLY: 12,
}


def _parse(value: str, pattern: re.Pattern, fmt: str, expected: str) -> date:
    s = str(value or "").strip()
    m = pattern.match(s)
    if not m:
        raise InvalidDateFormat(f'Invalid date format "{s}". Expected {expected}')
    try:
        parsed = datetime.strptime(s, fmt).date()
    except ValueError:
        raise InvalidDateFormat(f"Invalid date: {s}") from None
    # Round-trip guards against lenient parsing of impossible dates
    if parsed.strftime(fmt) != s:
        raise InvalidDateFormat(f"Invalid date: {s}")
    return parsed


def to_civil_date(display: str) -> date:
    """Parse a DD-MM-YYYY display string into a civil date."""
    return _parse(display, _DMY_RE, DISPLAY_FORMAT, "DD-MM-YYYY")


def parse_ymd(value: str) -> date:
    """Parse a YYYY-MM-DD storage string into a civil date."""
    return _parse(value, _YMD_RE, STORAGE_FORMAT, "YYYY-MM-DD")


def parse_any(value: "str | date") -> date:
    """Accept a date, a DD-MM-YYYY string or a YYYY-MM-DD string."""
    if isinstance(value, date):
        return value
    s = str(value or "").strip()
    if _YMD_RE.match(s):
        return parse_ymd(s)
    return to_civil_date(s)


def to_display(d: date) -> str:
    """Format a civil date as DD-MM-YYYY."""
    return d.strftime(DISPLAY_FORMAT)


def to_storage(d: date) -> str:
    """Format a civil date as YYYY-MM-DD."""
    return d.strftime(STORAGE_FORMAT)


def ymd_to_display(ymd: str | None) -> str:
    """Convert a stored YYYY-MM-DD string for display, '' if malformed."""
    if not ymd:
        return ""
    m = _YMD_RE.match(str(ymd).strip())
    if not m:
        return ""
    return f"{m.group(3)}-{m.group(2)}-{m.group(1)}"


def civil_date_in_zone(instant: datetime, zone: str | ZoneInfo = DEFAULT_ZONE) -> date:
    """Civil date of an instant as observed in a zone. Naive instants are UTC."""
    tz = zone if isinstance(zone, ZoneInfo) else ZoneInfo(zone)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(tz).date()


def today_in_zone(zone: str | ZoneInfo = DEFAULT_ZONE, now: datetime | None = None) -> date:
    """Today's civil date in the firm zone."""
    return civil_date_in_zone(now or datetime.now(timezone.utc), zone)


def instant_for(d: date, zone: str | ZoneInfo = DEFAULT_ZONE) -> datetime:
    """Midnight of a civil date in the firm zone, for range queries."""
    tz = zone if isinstance(zone, ZoneInfo) else ZoneInfo(zone)
    return datetime.combine(d, time(0, 0), tzinfo=tz)


def advance(base: date, unit: "Recurrence | str | None", steps: int) -> date:
    """
    Advance a civil date by N steps of a recurrence unit.

    Month-based units clamp to the last day of a shorter target month
    (Jan 31 + 1 month = Feb 28). Each step count is applied to the base date
    directly, so clamping never accumulates. Ad-hoc or unknown units fall back
    to days.
    """
    if steps == 0:
        return base
    try:
        unit = Recurrence.parse(unit)
    except InvalidInput:
        unit = Recurrence.AD_HOC

    if unit in _MONTH_STEPS:
        return base + relativedelta(months=_MONTH_STEPS[unit] * steps)
    return base + timedelta(days=_DAY_STEPS.get(unit, 1) * steps)


def start_date_for(due: date, trigger_days_before: int) -> date:
    """Start milestone = due date minus the trigger window (civil days)."""
    if trigger_days_before < 0:
        raise InvalidInput("triggerDaysBefore must be >= 0", field="trigger_days_before")
    return due - timedelta(days=trigger_days_before)


def days_until(target: date, today: date) -> int:
    """Whole civil days from today to target (negative if past)."""
    return (target - today).days
