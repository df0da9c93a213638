"""Ports - interfaces/protocols for external dependencies."""

from .store import DocumentStore, Filter
from .identity import IdentityVerifier
from .calendar_service import CalendarService
from .mailer import Mailer, SentMail
from .audit_sink import AuditSink

__all__ = [
    "DocumentStore",
    "Filter",
    "IdentityVerifier",
    "CalendarService",
    "Mailer",
    "SentMail",
    "AuditSink",
]
