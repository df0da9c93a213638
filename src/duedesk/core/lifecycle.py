"""Pure occurrence lifecycle rules: authorization, status stamps, edit propagation."""

from dataclasses import dataclass, fields
from datetime import date, datetime

from .errors import Forbidden, InvalidInput
from .tasks import (
    MailTrack,
    Occurrence,
    Role,
    Status,
    as_address_list,
    normalize_category,
    normalize_priority,
)


@dataclass
class Actor:
    """A verified caller."""

    uid: str
    email: str
    role: Role = Role.ASSOCIATE

    @property
    def privileged(self) -> bool:
        return self.role.privileged


def is_assignee(actor: Actor, occ: Occurrence) -> bool:
    return bool(occ.assignee_uid) and occ.assignee_uid == actor.uid


def require_privileged(actor: Actor, action: str) -> None:
    if not actor.privileged:
        raise Forbidden(f"{action} requires a Partner or Manager")


def require_can_modify(actor: Actor, occ: Occurrence) -> None:
    """Privileged callers may touch anything; others only their own occurrences."""
    if not actor.privileged and not is_assignee(actor, occ):
        raise Forbidden(f"Not allowed on task {occ.id}")


def require_can_delete(actor: Actor, targets: list[Occurrence], whole_series: bool) -> None:
    if actor.privileged:
        return
    if whole_series:
        raise Forbidden("Associates cannot delete an entire series")
    for occ in targets:
        require_can_modify(actor, occ)


@dataclass
class StatusChange:
    occurrence_id: str
    previous: Status
    current: Status

    @property
    def completed_now(self) -> bool:
        return self.current is Status.COMPLETED


def apply_status(
    occ: Occurrence,
    new_status: Status,
    now: datetime,
    status_note: str | None = None,
    delay_reason: str | None = None,
    delay_notes: str | None = None,
    clear_delay_reason: bool = False,
) -> StatusChange:
    """
    Set a new status and stamp the transition timestamps.

    Any status may follow any other. Entering APPROVAL_PENDING stamps the
    completion request, entering COMPLETED stamps completion.
    """
    previous = occ.status
    occ.status = new_status
    occ.updated_at = now
    if status_note is not None:
        occ.status_note = status_note
    if delay_reason is not None or clear_delay_reason:
        occ.delay_reason = delay_reason or None
    if delay_notes is not None:
        occ.delay_notes = delay_notes
    if new_status is Status.APPROVAL_PENDING:
        occ.completion_requested_at = now
    if new_status is Status.COMPLETED:
        occ.completed_at = now
    return StatusChange(occurrence_id=occ.id, previous=previous, current=new_status)


@dataclass
class MailPatch:
    """Partial update of one notification track. None = unchanged."""

    enabled: bool | None = None
    subject: str | None = None
    body: str | None = None
    to: list[str] | str | None = None
    cc: list[str] | str | None = None
    bcc: list[str] | str | None = None
    cc_assignee: bool | None = None
    cc_manager: bool | None = None

    def apply(self, track: MailTrack) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name in ("to", "cc", "bcc"):
                value = as_address_list(value)
            setattr(track, f.name, value)


@dataclass
class TemplatePatch:
    """
    Partial edit of an occurrence. None = unchanged.

    `due_date` only applies to a single-occurrence edit; a series-wide edit
    never moves individual due dates.
    """

    title: str | None = None
    category: str | None = None
    type: str | None = None
    priority: str | None = None
    trigger_days_before: int | None = None
    assignee_uid: str | None = None
    assignee_email: str | None = None
    snoozed_until: date | None = None
    clear_snooze: bool = False
    calendar_description: str | None = None
    due_date: date | None = None
    start_mail: MailPatch | None = None
    completion_mail: MailPatch | None = None

    def validate(self) -> None:
        if self.trigger_days_before is not None and self.trigger_days_before < 0:
            raise InvalidInput("triggerDaysBefore must be >= 0", field="trigger_days_before")
        if self.title is not None and not self.title.strip():
            raise InvalidInput("title must not be blank", field="title")


def apply_patch(occ: Occurrence, patch: TemplatePatch, single: bool, now: datetime) -> None:
    """
    Apply an edit to one occurrence and re-derive its start date.

    With single=False (series-wide) the due date in the patch is ignored and
    the start date is recomputed from this occurrence's own due date.
    """
    if patch.title is not None:
        occ.title = patch.title.strip()
    if patch.category is not None:
        occ.category = normalize_category(patch.category)
    if patch.type is not None:
        occ.type = patch.type.strip() or occ.type
    if patch.priority is not None:
        occ.priority = normalize_priority(patch.priority)
    if patch.trigger_days_before is not None:
        occ.trigger_days_before = int(patch.trigger_days_before)
    if patch.assignee_email is not None:
        occ.assignee_email = patch.assignee_email.strip()
    if patch.assignee_uid is not None:
        occ.assignee_uid = patch.assignee_uid
    if patch.clear_snooze:
        occ.snoozed_until = None
    elif patch.snoozed_until is not None:
        occ.snoozed_until = patch.snoozed_until
    if patch.calendar_description is not None:
        occ.calendar_description = patch.calendar_description.strip()
    if single and patch.due_date is not None:
        occ.due_date = patch.due_date
    if patch.start_mail is not None:
        patch.start_mail.apply(occ.start_mail)
    if patch.completion_mail is not None:
        patch.completion_mail.apply(occ.completion_mail)
    occ.recompute_start()
    occ.updated_at = now
