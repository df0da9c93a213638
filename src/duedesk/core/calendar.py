"""Pure calendar domain logic - no I/O dependencies."""

from dataclasses import dataclass
from datetime import date
from urllib.parse import urlencode
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .dates import DEFAULT_ZONE, to_display
from .tasks import Occurrence

COMPLETED_PREFIX = "[COMPLETED] "
COMPLETED_COLOR_ID = "2"


@dataclass
class CalendarWindow:
    """Time-of-day window used for START milestone events."""

    start_hour: int = 10
    end_hour: int = 12
    timezone: str = DEFAULT_ZONE

    @classmethod
    def from_settings(cls, data: dict | None, default: "CalendarWindow") -> "CalendarWindow":
        """Overlay a stored settings document on the configured window."""
        data = data or {}

        def _hour(key: str, fallback: int) -> int:
            try:
                value = int(data.get(key, fallback))
            except (TypeError, ValueError):
                return fallback
            return value if 0 <= value <= 23 else fallback

        start_hour = _hour("start_hour", default.start_hour)
        end_hour = _hour("end_hour", default.end_hour)
        if start_hour >= end_hour:
            start_hour, end_hour = default.start_hour, default.end_hour

        zone = data.get("timezone") or default.timezone
        try:
            ZoneInfo(str(zone))
        except (ZoneInfoNotFoundError, ValueError):
            zone = default.timezone

        return cls(start_hour=start_hour, end_hour=end_hour, timezone=zone)


@dataclass
class EventSpec:
    """What a START calendar event should look like."""

    summary: str
    description: str
    day: date
    start_hour: int
    end_hour: int
    timezone: str
    color_id: str | None = None

    def time_range(self) -> dict:
        """Google Calendar start/end payload."""
        d = self.day.isoformat()
        return {
            "start": {"dateTime": f"{d}T{self.start_hour:02d}:00:00", "timeZone": self.timezone},
            "end": {"dateTime": f"{d}T{self.end_hour:02d}:00:00", "timeZone": self.timezone},
        }


def event_description(occ: Occurrence) -> str:
    label = occ.client_name.strip() or occ.client_id.strip()
    base = f"Client: {label}\nStart: {to_display(occ.start_date)}\nDue: {to_display(occ.due_date)}\n"
    extra = occ.calendar_description.strip()
    return f"{base}\n{extra}" if extra else base


def start_event_for(occ: Occurrence, window: CalendarWindow) -> EventSpec:
    """
    START milestone event for an occurrence.

    Completed occurrences are prefixed and colored green.
    """
    prefix = COMPLETED_PREFIX if occ.is_completed else ""
    return EventSpec(
        summary=f"{prefix}START: {occ.title}",
        description=event_description(occ),
        day=occ.start_date,
        start_hour=window.start_hour,
        end_hour=window.end_hour,
        timezone=window.timezone,
        color_id=COMPLETED_COLOR_ID if occ.is_completed else None,
    )


def due_event_for(occ: Occurrence, window: CalendarWindow) -> EventSpec:
    """Legacy DUE milestone event, still patched when an id is recorded."""
    spec = start_event_for(occ, window)
    prefix = COMPLETED_PREFIX if occ.is_completed else ""
    spec.summary = f"{prefix}DUE: {occ.title}"
    spec.day = occ.due_date
    return spec


def add_to_calendar_url(
    title: str,
    day: date,
    window: CalendarWindow,
    details: str = "",
) -> str:
    """Google Calendar TEMPLATE link a client can use to save the milestone."""
    compact = day.strftime("%Y%m%d")
    params = {
        "action": "TEMPLATE",
        "text": title or "Compliance Task",
        "dates": f"{compact}T{window.start_hour:02d}0000/{compact}T{window.end_hour:02d}0000",
        "ctz": window.timezone,
        "details": details,
    }
    return f"https://calendar.google.com/calendar/render?{urlencode(params)}"
