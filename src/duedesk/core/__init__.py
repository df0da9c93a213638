"""Functional core - pure business logic with no I/O."""

from .dates import Recurrence, advance, start_date_for, to_civil_date, to_display
from .tasks import Client, MailTrack, Occurrence, Role, Status, TaskTemplate
from .recipients import Recipients, merge_address_lists, resolve_start_recipients, resolve_completion_recipients
from .series import AppendPlan, append_to_series, expand_series
from .lifecycle import Actor, MailPatch, TemplatePatch, apply_patch, apply_status
from .reconcile import DigestBuckets, ReconciliationResult, bucket_for_digest, should_run

__all__ = [
    # Dates
    "Recurrence",
    "advance",
    "start_date_for",
    "to_civil_date",
    "to_display",
    # Tasks
    "Client",
    "MailTrack",
    "Occurrence",
    "Role",
    "Status",
    "TaskTemplate",
    # Recipients
    "Recipients",
    "merge_address_lists",
    "resolve_start_recipients",
    "resolve_completion_recipients",
    # Series
    "AppendPlan",
    "append_to_series",
    "expand_series",
    # Lifecycle
    "Actor",
    "MailPatch",
    "TemplatePatch",
    "apply_patch",
    "apply_status",
    # Reconciliation
    "DigestBuckets",
    "ReconciliationResult",
    "bucket_for_digest",
    "should_run",
]
