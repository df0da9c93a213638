"""Adapters - I/O implementations of ports."""

from .json_store import JsonFileStore
from .google_calendar import GoogleCalendarAdapter
from .gmail import GmailAdapter
from .google_identity import GoogleIdentityVerifier
from .store_audit import StoreAuditSink

__all__ = [
    "JsonFileStore",
    "GoogleCalendarAdapter",
    "GmailAdapter",
    "GoogleIdentityVerifier",
    "StoreAuditSink",
]
