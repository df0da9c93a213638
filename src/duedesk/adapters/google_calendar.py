"""Google Calendar API adapter."""

import logging
from pathlib import Path

from duedesk.core.calendar import EventSpec
from duedesk.core.errors import CollaboratorUnavailable

from .google_credentials import load_credentials

logger = logging.getLogger(__name__)

# Already-deleted events come back as 404 or 410
_GONE = (404, 410)


def _status_of(error: Exception) -> int | None:
    resp = getattr(error, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def event_body(spec: EventSpec) -> dict:
    """Google Calendar event resource for an EventSpec."""
    body = {"summary": spec.summary, "description": spec.description, **spec.time_range()}
    if spec.color_id:
        body["colorId"] = spec.color_id
    return body


class GoogleCalendarAdapter:
    """
    Manages milestone events in Google Calendar via the API.

    Implements CalendarService protocol.
    """

    def __init__(self, token_path: Path, calendar_id: str = "primary"):
        self.token_path = Path(token_path).expanduser()
        self.calendar_id = calendar_id

    def _build_service(self):
        """Build a Google Calendar API service."""
        from googleapiclient.discovery import build

        creds = load_credentials(self.token_path)
        if not creds:
            raise CollaboratorUnavailable("Google Calendar credentials unavailable")
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    def create_event(self, spec: EventSpec) -> tuple[str, str | None]:
        try:
            service = self._build_service()
            created = (
                service.events()
                .insert(calendarId=self.calendar_id, body=event_body(spec))
                .execute()
            )
        except CollaboratorUnavailable:
            raise
        except Exception as e:
            raise CollaboratorUnavailable(f"Calendar create failed: {e}") from e
        return created["id"], created.get("htmlLink")

    def patch_event(self, event_id: str | None, spec: EventSpec) -> None:
        if not event_id:
            return
        try:
            service = self._build_service()
            service.events().patch(
                calendarId=self.calendar_id, eventId=event_id, body=event_body(spec)
            ).execute()
        except CollaboratorUnavailable:
            raise
        except Exception as e:
            if _status_of(e) in _GONE:
                logger.info(f"Calendar event {event_id} already gone, nothing to patch")
                return
            raise CollaboratorUnavailable(f"Calendar patch failed for {event_id}: {e}") from e

    def delete_event(self, event_id: str | None) -> None:
        if not event_id:
            return
        try:
            service = self._build_service()
            service.events().delete(calendarId=self.calendar_id, eventId=event_id).execute()
        except CollaboratorUnavailable:
            raise
        except Exception as e:
            if _status_of(e) in _GONE:
                logger.info(f"Calendar event {event_id} already deleted")
                return
            raise CollaboratorUnavailable(f"Calendar delete failed for {event_id}: {e}") from e
