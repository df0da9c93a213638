"""Pure reconciliation decisions - idempotency, candidate selection, digest buckets."""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from functools import reduce

from .dates import days_until, to_display
from .tasks import Occurrence, Status


def should_run(last_run: date | None, today: date, force: bool = False) -> bool:
    """A job runs at most once per civil day unless forced."""
    return force or last_run != today


def is_start_candidate(occ: Occurrence, today: date) -> bool:
    """Start mail is due today, not yet sent, on an active occurrence."""
    return occ.start_date == today and not occ.start_mail.sent and occ.status.is_active


def select_start_candidates(occurrences: list[Occurrence], today: date) -> list[Occurrence]:
    return [o for o in occurrences if is_start_candidate(o, today)]


class StartOutcome(str, Enum):
    """Result of one start-notification attempt."""

    SENT = "sent"
    SKIPPED_NO_TEMPLATE = "skipped_no_template"
    SKIPPED_NO_CLIENT = "skipped_no_client"
    SKIPPED_NO_RECIPIENT = "skipped_no_recipient"
    FAILED = "failed"


@dataclass(frozen=True)
class OccurrenceResult:
    occurrence_id: str
    outcome: StartOutcome
    detail: str = ""


@dataclass(frozen=True)
class ReconciliationResult:
    """Aggregate of one reconciliation run."""

    today: date | None = None
    skipped: bool = False
    sent_count: int = 0
    skipped_no_template: int = 0
    skipped_no_client: int = 0
    skipped_no_recipient: int = 0
    failed_count: int = 0
    ran_digest: bool = False
    digest_sent: int = 0

    def to_dict(self) -> dict:
        return {
            "today": self.today.isoformat() if self.today else None,
            "skipped": self.skipped,
            "sentCount": self.sent_count,
            "skippedNoTemplate": self.skipped_no_template,
            "skippedNoClient": self.skipped_no_client,
            "skippedNoRecipient": self.skipped_no_recipient,
            "failedCount": self.failed_count,
            "ranDigest": self.ran_digest,
            "digestSent": self.digest_sent,
        }


_COUNTERS = {
    StartOutcome.SENT: "sent_count",
    StartOutcome.SKIPPED_NO_TEMPLATE: "skipped_no_template",
    StartOutcome.SKIPPED_NO_CLIENT: "skipped_no_client",
    StartOutcome.SKIPPED_NO_RECIPIENT: "skipped_no_recipient",
    StartOutcome.FAILED: "failed_count",
}


def _add(acc: ReconciliationResult, item: OccurrenceResult) -> ReconciliationResult:
    name = _COUNTERS[item.outcome]
    return replace(acc, **{name: getattr(acc, name) + 1})


def fold_results(
    results: list[OccurrenceResult], initial: ReconciliationResult | None = None
) -> ReconciliationResult:
    """Reduce per-occurrence outcomes into aggregate counters."""
    return reduce(_add, results, initial or ReconciliationResult())


@dataclass
class DigestBuckets:
    """Active occurrences grouped by distance to their due date."""

    overdue: list[Occurrence] = field(default_factory=list)
    due_today: list[Occurrence] = field(default_factory=list)
    due_in_3: list[Occurrence] = field(default_factory=list)
    due_in_7: list[Occurrence] = field(default_factory=list)
    due_in_15: list[Occurrence] = field(default_factory=list)
    due_in_30: list[Occurrence] = field(default_factory=list)
    approval_pending: list[Occurrence] = field(default_factory=list)

    SECTIONS = (
        ("overdue", "Overdue"),
        ("due_today", "Due Today"),
        ("due_in_3", "Due in 1-3 days"),
        ("due_in_7", "Due in 4-7 days"),
        ("due_in_15", "Due in 8-15 days"),
        ("due_in_30", "Due in 16-30 days"),
        ("approval_pending", "Waiting for approval"),
    )

    def sections(self) -> list[tuple[str, list[Occurrence]]]:
        return [(label, getattr(self, name)) for name, label in self.SECTIONS]

    @property
    def is_empty(self) -> bool:
        return all(not items for _, items in self.sections())


def bucket_for_digest(occurrences: list[Occurrence], today: date) -> DigestBuckets:
    """
    Partition occurrences by whole civil days until due.

    COMPLETED occurrences never appear. APPROVAL_PENDING occurrences also land
    in their date bucket. Anything due more than 30 days out is left out.
    """
    buckets = DigestBuckets()
    for occ in sorted(occurrences, key=lambda o: o.due_date):
        if occ.is_completed:
            continue
        if occ.status is Status.APPROVAL_PENDING:
            buckets.approval_pending.append(occ)

        diff = days_until(occ.due_date, today)
        if diff < 0:
            buckets.overdue.append(occ)
        elif diff == 0:
            buckets.due_today.append(occ)
        elif diff <= 3:
            buckets.due_in_3.append(occ)
        elif diff <= 7:
            buckets.due_in_7.append(occ)
        elif diff <= 15:
            buckets.due_in_15.append(occ)
        elif diff <= 30:
            buckets.due_in_30.append(occ)
    return buckets


def group_by_assignee(occurrences: list[Occurrence]) -> dict[str, list[Occurrence]]:
    grouped: dict[str, list[Occurrence]] = {}
    for occ in occurrences:
        email = occ.assignee_email.strip()
        if email:
            grouped.setdefault(email, []).append(occ)
    return grouped


def format_digest_line(occ: Occurrence) -> str:
    line = (
        f"- {occ.title} | Client: {occ.client_name} | Start: {to_display(occ.start_date)}"
        f" | Due: {to_display(occ.due_date)} | Status: {occ.status.value}"
        f" | Assignee: {occ.assignee_email}"
    )
    note = occ.status_note.strip()
    if note:
        line += f"\n  Note: {note}"
    return line


def format_digest(buckets: DigestBuckets, today: date, title: str = "Daily Digest") -> str:
    """Plain-text digest body."""
    header = f"{title} - {to_display(today)}"
    if buckets.is_empty:
        return f"{header}\n\nNo Tasks To Display"

    parts = [header]
    for label, items in buckets.sections():
        if not items:
            continue
        lines = "\n".join(format_digest_line(o) for o in items)
        parts.append(f"{label} ({len(items)})\n{lines}")
    return "\n\n".join(parts)
