"""Audit sink backed by the document store."""

import logging
from datetime import datetime, timezone

from duedesk.ports.store import DocumentStore

logger = logging.getLogger(__name__)

AUDIT_LOGS = "auditLogs"


class StoreAuditSink:
    """
    Appends audit entries to the auditLogs collection.

    Implements AuditSink protocol.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def record(
        self,
        subject_id: str | None,
        action: str,
        actor_uid: str | None = None,
        actor_email: str | None = None,
        details: dict | None = None,
    ) -> None:
        entry = {
            "task_id": subject_id,
            "action": action,
            "actor_uid": actor_uid,
            "actor_email": actor_email,
            "details": details or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.store.add(AUDIT_LOGS, entry)
        except Exception as e:
            logger.warning(f"Audit write failed for {action} on {subject_id}: {e}")
