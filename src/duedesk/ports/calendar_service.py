"""Calendar service interface."""

from typing import Protocol

from duedesk.core.calendar import EventSpec


class CalendarService(Protocol):
    """Creates, patches and deletes milestone events."""

    def create_event(self, spec: EventSpec) -> tuple[str, str | None]:
        """Create an event. Returns (event_id, html_link)."""
        ...

    def patch_event(self, event_id: str | None, spec: EventSpec) -> None:
        """Patch an event. A missing id or already-deleted event is a no-op."""
        ...

    def delete_event(self, event_id: str | None) -> None:
        """Delete an event. A missing id or already-deleted event is a no-op."""
        ...
