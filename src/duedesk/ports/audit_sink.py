"""Audit log interface."""

from typing import Protocol


class AuditSink(Protocol):
    """Append-only record of state changes."""

    def record(
        self,
        subject_id: str | None,
        action: str,
        actor_uid: str | None = None,
        actor_email: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Append an entry. Failures are logged, never raised."""
        ...
