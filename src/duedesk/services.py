"""Shared workflow layer between the CLI and the scheduler.

Each public method loads records from the store, applies the pure rules in
duedesk.core, writes the result back and then drives the calendar, mail and
audit collaborators. Calendar and mail failures are logged and never undo a
committed change.
"""

import logging
from datetime import date, datetime, timezone
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from .config import Config
from .core.calendar import CalendarWindow, due_event_for, start_event_for
from .core.dates import Recurrence, today_in_zone, to_display, to_storage
from .core.errors import CollaboratorUnavailable, Forbidden, InvalidInput, NotFound
from .core.lifecycle import (
    Actor,
    TemplatePatch,
    apply_patch,
    apply_status,
    require_can_delete,
    require_can_modify,
    require_privileged,
)
from .core.notifications import render_completion_mail, render_start_mail
from .core.recipients import resolve_completion_recipients, resolve_start_recipients
from .core.reconcile import OccurrenceResult, StartOutcome
from .core.series import (
    append_to_series,
    expand_series,
    max_index,
    series_anchor,
    template_from_occurrence,
)
from .core.tasks import (
    Attachment,
    Client,
    Occurrence,
    Status,
    TaskTemplate,
    as_address_list,
    normalize_category,
    normalize_priority,
)
from .ports import AuditSink, CalendarService, DocumentStore, Mailer

logger = logging.getLogger(__name__)

TASKS = "tasks"
CLIENTS = "clients"
USERS = "users"
SETTINGS = "settings"

BULK_OPERATIONS = ("STATUS", "REASSIGN", "SNOOZE", "DELETE")


def chunked(items: list, size: int) -> Iterable[list]:
    """Split a list into consecutive groups of at most `size` items."""
    size = max(1, size)
    for i in range(0, len(items), size):
        yield items[i : i + size]


class TaskService:
    """Task operations on top of the store and the external collaborators."""

    def __init__(
        self,
        store: DocumentStore,
        calendar: CalendarService,
        mailer: Mailer,
        audit: AuditSink,
        config: Config | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.calendar = calendar
        self.mailer = mailer
        self.audit = audit
        self.config = config or Config()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ============== Time and settings ==============

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return today_in_zone(self.config.timezone, self.now())

    def calendar_window(self) -> CalendarWindow:
        """Configured window, overridden by the settings/calendar document."""
        default = self.config.calendar_window
        try:
            data = self.store.get(SETTINGS, "calendar")
        except Exception as e:
            logger.warning(f"Could not read calendar settings, using defaults: {e}")
            return default
        return CalendarWindow.from_settings(data, default)

    # ============== Loading and saving ==============

    def get_occurrence(self, occurrence_id: str) -> Occurrence:
        data = self.store.get(TASKS, occurrence_id)
        if data is None:
            raise NotFound(f"Task {occurrence_id} not found")
        return Occurrence.from_record(occurrence_id, data)

    def series_occurrences(self, series_id: str) -> list[Occurrence]:
        """All occurrences of a series, ordered by index."""
        docs = self.store.query(TASKS, [("series_id", "==", series_id)])
        occurrences = [Occurrence.from_record(i, d) for i, d in docs]
        return sorted(occurrences, key=lambda o: (o.occurrence_index or 0, o.due_date))

    def _save(self, occ: Occurrence) -> None:
        self.store.set(TASKS, occ.id, occ.to_record(self.config.timezone))

    def get_client(self, client_id: str) -> Client:
        data = self.store.get(CLIENTS, client_id)
        if data is None:
            raise NotFound(f"Client {client_id} not found")
        return Client.from_record(client_id, data)

    def manager_email_for(self, occ: Occurrence) -> str | None:
        """Manager address of the occurrence's assignee, if recorded."""
        user = None
        if occ.assignee_uid:
            user = self.store.get(USERS, occ.assignee_uid)
        if user is None and occ.assignee_email:
            matches = self.store.query(USERS, [("email", "==", occ.assignee_email.lower())])
            user = matches[0][1] if matches else None
        if not user:
            return None
        return (user.get("manager_email") or "").strip() or None

    # ============== Clients ==============

    def find_or_create_client(self, name: str, email: str | None = None, actor: Actor | None = None) -> Client:
        """Look up a client by exact name, creating it when missing."""
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Client name is required", field="client")

        matches = self.store.query(CLIENTS, [("name", "==", name)])
        if matches:
            client = Client.from_record(*matches[0])
            if email and not client.primary_email:
                client.primary_email = email.strip()
                self.store.update(CLIENTS, client.id, {"primary_email": client.primary_email})
            return client

        client = Client(id=self.store.new_id(CLIENTS), name=name, primary_email=(email or "").strip())
        self.store.set(CLIENTS, client.id, client.to_record())
        self.audit.record(
            client.id,
            "CLIENT_CREATED",
            actor.uid if actor else None,
            actor.email if actor else None,
            {"name": name},
        )
        logger.info(f"Created client {name} ({client.id})")
        return client

    def update_client(
        self,
        actor: Actor,
        client_id: str,
        name: str | None = None,
        primary_email: str | None = None,
        cc_emails: list[str] | str | None = None,
        bcc_emails: list[str] | str | None = None,
    ) -> Client:
        require_privileged(actor, "Editing a client")
        client = self.get_client(client_id)
        if name is not None:
            if not name.strip():
                raise InvalidInput("Client name must not be blank", field="name")
            client.name = name.strip()
        if primary_email is not None:
            client.primary_email = primary_email.strip()
        if cc_emails is not None:
            client.cc_emails = as_address_list(cc_emails)
        if bcc_emails is not None:
            client.bcc_emails = as_address_list(bcc_emails)
        self.store.set(CLIENTS, client.id, client.to_record())
        self.audit.record(client.id, "CLIENT_UPDATED", actor.uid, actor.email, client.to_record())
        return client

    def _resolve_client(self, template: TaskTemplate, client_email: str | None, actor: Actor) -> Client:
        if template.client_id:
            return self.get_client(template.client_id)
        return self.find_or_create_client(template.client_name, client_email, actor)

    # ============== Calendar side effects ==============

    def _create_calendar_event(self, occ: Occurrence, window: CalendarWindow) -> None:
        try:
            occ.calendar_event_id, occ.calendar_html_link = self.calendar.create_event(
                start_event_for(occ, window)
            )
        except CollaboratorUnavailable as e:
            logger.warning(f"Calendar event not created for task {occ.id}: {e}")

    def _sync_calendar(self, occ: Occurrence, window: CalendarWindow | None = None) -> None:
        """Patch the occurrence's events to reflect its current state."""
        window = window or self.calendar_window()
        try:
            self.calendar.patch_event(occ.calendar_event_id, start_event_for(occ, window))
            self.calendar.patch_event(occ.calendar_due_event_id, due_event_for(occ, window))
        except CollaboratorUnavailable as e:
            logger.warning(f"Calendar patch failed for task {occ.id}: {e}")

    def _remove_calendar(self, occ: Occurrence) -> None:
        for event_id in (occ.calendar_event_id, occ.calendar_due_event_id):
            try:
                self.calendar.delete_event(event_id)
            except CollaboratorUnavailable as e:
                logger.warning(f"Calendar delete failed for task {occ.id}: {e}")

    # ============== Mail side effects ==============

    def send_start_mail(self, occ: Occurrence, window: CalendarWindow | None = None) -> OccurrenceResult:
        """
        Send the start notification for one occurrence and record it as sent.

        Missing template, client or recipients are skips, not errors. A mail
        failure is reported as FAILED and leaves the occurrence unsent so a
        later pass can retry.
        """
        track = occ.start_mail
        if not track.has_template:
            return OccurrenceResult(occ.id, StartOutcome.SKIPPED_NO_TEMPLATE)

        try:
            client = self.get_client(occ.client_id)
        except NotFound:
            return OccurrenceResult(occ.id, StartOutcome.SKIPPED_NO_CLIENT)

        recipients = resolve_start_recipients(client, occ, self.manager_email_for(occ))
        if not recipients.to:
            return OccurrenceResult(occ.id, StartOutcome.SKIPPED_NO_RECIPIENT)

        mail = render_start_mail(occ, client, window or self.calendar_window(), self.config.mail_signature)
        try:
            sent = self.mailer.send(
                recipients.to, mail.subject, mail.body, cc=recipients.cc, bcc=recipients.bcc
            )
        except CollaboratorUnavailable as e:
            logger.warning(f"Start mail failed for task {occ.id}: {e}")
            return OccurrenceResult(occ.id, StartOutcome.FAILED, str(e))
        if sent is None:
            return OccurrenceResult(occ.id, StartOutcome.SKIPPED_NO_RECIPIENT)

        track.sent = True
        track.sent_at = self.now()
        track.thread_id = sent.thread_id
        track.message_id = sent.message_id
        track.rfc_message_id = sent.rfc_message_id
        track.references = sent.references
        occ.updated_at = track.sent_at
        self._save(occ)
        self.audit.record(
            occ.id,
            "EMAIL_SENT",
            details={"kind": "START", **recipients.to_dict(), "threadId": sent.thread_id},
        )
        logger.info(f"Start mail sent for task {occ.id} to {', '.join(recipients.to)}")
        return OccurrenceResult(occ.id, StartOutcome.SENT)

    def _send_completion_mail(self, occ: Occurrence, actor: Actor | None) -> bool:
        track = occ.completion_mail
        if track.sent or not track.enabled:
            return False

        try:
            client = self.get_client(occ.client_id)
        except NotFound:
            logger.warning(f"No client {occ.client_id} for completion mail of task {occ.id}")
            return False

        recipients = resolve_completion_recipients(client, occ, self.manager_email_for(occ))
        if recipients.is_empty:
            return False

        completed_at = occ.completed_at or self.now()
        local = completed_at.astimezone(ZoneInfo(self.config.timezone))
        mail = render_completion_mail(
            occ, client, local.strftime("%d-%m-%Y %H:%M"), self.config.mail_signature
        )
        start = occ.start_mail
        try:
            sent = self.mailer.send(
                recipients.to,
                mail.subject,
                mail.body,
                cc=recipients.cc,
                bcc=recipients.bcc,
                thread_id=start.thread_id,
                in_reply_to=start.rfc_message_id if start.thread_id else None,
                references=start.references if start.thread_id else None,
            )
        except CollaboratorUnavailable as e:
            logger.warning(f"Completion mail failed for task {occ.id}: {e}")
            return False
        if sent is None:
            return False

        track.sent = True
        track.sent_at = self.now()
        track.thread_id = sent.thread_id
        track.message_id = sent.message_id
        track.rfc_message_id = sent.rfc_message_id
        track.references = sent.references
        self._save(occ)
        self.audit.record(
            occ.id,
            "EMAIL_SENT",
            actor.uid if actor else None,
            actor.email if actor else None,
            {"kind": "COMPLETION", **recipients.to_dict(), "threaded": bool(start.thread_id)},
        )
        return True

    # ============== Creation ==============

    def _normalize_template(self, template: TaskTemplate) -> None:
        template.title = (template.title or "").strip()
        if not template.title:
            raise InvalidInput("title is required", field="title")
        if template.trigger_days_before < 0:
            raise InvalidInput("triggerDaysBefore must be >= 0", field="trigger_days_before")
        template.recurrence = Recurrence.parse(template.recurrence)
        template.category = normalize_category(template.category)
        template.priority = normalize_priority(template.priority)
        template.type = (template.type or "FILING").strip().upper()

    def _commit_new(self, actor: Actor, occurrences: list[Occurrence], source: str) -> list[Occurrence]:
        """Persist new occurrences one by one. A failed write skips only that one."""
        window = self.calendar_window()
        today = self.today()
        committed = []
        for occ in occurrences:
            self._create_calendar_event(occ, window)
            try:
                self._save(occ)
            except Exception as e:
                logger.error(f"Could not save task {occ.id} (#{occ.occurrence_index}): {e}")
                self._remove_calendar(occ)
                continue
            committed.append(occ)
            self.audit.record(
                occ.id,
                "TASK_CREATED",
                actor.uid,
                actor.email,
                {"source": source, "seriesId": occ.series_id, "occurrenceIndex": occ.occurrence_index},
            )
            if occ.start_date == today and occ.status.is_active:
                result = self.send_start_mail(occ, window)
                logger.info(f"Immediate start mail for task {occ.id}: {result.outcome.value}")
        return committed

    def create_series(
        self,
        actor: Actor,
        template: TaskTemplate,
        due_date: date,
        client_email: str | None = None,
    ) -> dict:
        """Expand a template into occurrences and persist them."""
        require_privileged(actor, "Creating a series")
        self._normalize_template(template)
        client = self._resolve_client(template, client_email, actor)
        template.client_id, template.client_name = client.id, client.name
        template.created_by = template.created_by or actor.uid

        now = self.now()
        occurrences = expand_series(
            template,
            due_date,
            template.occurrence_count,
            make_id=lambda: self.store.new_id(TASKS),
            make_series_id=lambda: self.store.new_id("series"),
            now=now,
        )
        committed = self._commit_new(actor, occurrences, "series")
        series_id = occurrences[0].series_id if occurrences else None
        logger.info(f"Created {len(committed)}/{len(occurrences)} occurrences for {template.title}")
        return {
            "createdCount": len(committed),
            "seriesId": series_id,
            "failedCount": len(occurrences) - len(committed),
        }

    def create_task(
        self,
        actor: Actor,
        template: TaskTemplate,
        due_date: date,
        client_email: str | None = None,
    ) -> dict:
        """Create one standalone ad-hoc task."""
        template.recurrence = Recurrence.AD_HOC
        template.occurrence_count = 1
        self._normalize_template(template)
        if not actor.privileged and not template.assignee_uid:
            template.assignee_uid, template.assignee_email = actor.uid, actor.email
        client = self._resolve_client(template, client_email, actor)
        template.client_id, template.client_name = client.id, client.name
        template.created_by = template.created_by or actor.uid

        occurrences = expand_series(
            template,
            due_date,
            1,
            make_id=lambda: self.store.new_id(TASKS),
            make_series_id=lambda: self.store.new_id("series"),
            now=self.now(),
        )
        committed = self._commit_new(actor, occurrences, "single")
        if not committed:
            raise CollaboratorUnavailable("Task could not be saved")
        return {"createdCount": 1, "id": committed[0].id, "seriesId": None}

    def append_to_series(self, actor: Actor, series_id: str, add_count: int) -> dict:
        """Add occurrences after the highest index and refresh every total."""
        require_privileged(actor, "Extending a series")
        if int(add_count) < 1:
            raise InvalidInput("addCount must be >= 1", field="add_count")
        existing = self.series_occurrences(series_id)
        if not existing:
            raise NotFound(f"Series {series_id} not found")

        template = template_from_occurrence(series_anchor(existing))
        plan = append_to_series(
            existing,
            template,
            add_count,
            make_id=lambda: self.store.new_id(TASKS),
            now=self.now(),
        )
        committed = self._commit_new(actor, plan.created, "append")

        # Skipped writes must not inflate the total past the highest stored index
        new_total = max_index(existing + committed)
        patches = {o.id: {"occurrence_total": new_total} for o in existing + committed}
        for group in chunked(list(patches), self.config.store_batch_limit):
            self.store.batch_update(TASKS, {i: patches[i] for i in group})

        self.audit.record(
            series_id,
            "SERIES_APPENDED",
            actor.uid,
            actor.email,
            {"createdCount": len(committed), "newOccurrenceTotal": new_total},
        )
        return {"createdCount": len(committed), "newOccurrenceTotal": new_total}

    # ============== Edits and deletion ==============

    def edit(self, actor: Actor, occurrence_id: str, patch: TemplatePatch, whole_series: bool = False) -> dict:
        """Edit one occurrence, or the template fields of its whole series."""
        patch.validate()
        occ = self.get_occurrence(occurrence_id)
        series_wide = whole_series and bool(occ.series_id)
        require_privileged(actor, "Editing a series" if series_wide else "Editing a task")

        targets = self.series_occurrences(occ.series_id) if series_wide else [occ]
        window = self.calendar_window()
        now = self.now()
        updated = 0
        for target in targets:
            apply_patch(target, patch, single=not series_wide, now=now)
            try:
                self._save(target)
            except Exception as e:
                logger.error(f"Could not save task {target.id}: {e}")
                continue
            updated += 1
            self._sync_calendar(target, window)
            self.audit.record(
                target.id,
                "SERIES_UPDATED" if series_wide else "TASK_UPDATED",
                actor.uid,
                actor.email,
                {"seriesId": target.series_id},
            )
        return {"updatedCount": updated, "failedCount": len(targets) - updated}

    def delete(self, actor: Actor, occurrence_id: str, whole_series: bool = False) -> dict:
        """Delete an occurrence, or every occurrence of its series."""
        occ = self.get_occurrence(occurrence_id)
        series_wide = whole_series and bool(occ.series_id)
        targets = self.series_occurrences(occ.series_id) if series_wide else [occ]
        require_can_delete(actor, targets, series_wide)

        deleted = 0
        for target in targets:
            try:
                self.store.delete(TASKS, target.id)
            except Exception as e:
                logger.error(f"Could not delete task {target.id}: {e}")
                continue
            deleted += 1
            self._remove_calendar(target)
            self.audit.record(
                target.id, "TASK_DELETED", actor.uid, actor.email, {"seriesId": target.series_id}
            )
        return {"deletedCount": deleted, "failedCount": len(targets) - deleted}

    # ============== Status ==============

    def _after_status(self, actor: Actor, occ: Occurrence, previous: Status, window: CalendarWindow) -> None:
        self.audit.record(
            occ.id,
            "STATUS_CHANGED",
            actor.uid,
            actor.email,
            {"from": previous.value, "to": occ.status.value},
        )
        self._sync_calendar(occ, window)
        if occ.is_completed:
            self._send_completion_mail(occ, actor)

    def advance_status(
        self,
        actor: Actor,
        occurrence_id: str,
        new_status: str | Status,
        status_note: str | None = None,
        delay_reason: str | None = None,
        delay_notes: str | None = None,
    ) -> dict:
        status = Status.parse(new_status)
        occ = self.get_occurrence(occurrence_id)
        require_can_modify(actor, occ)

        change = apply_status(occ, status, self.now(), status_note, delay_reason, delay_notes)
        self._save(occ)
        self._after_status(actor, occ, change.previous, self.calendar_window())
        return {"ok": True}

    # ============== Bulk ==============

    def bulk(
        self,
        actor: Actor,
        operation: str,
        occurrence_ids: list[str],
        status: str | None = None,
        status_note: str | None = None,
        assignee_uid: str | None = None,
        assignee_email: str | None = None,
        snoozed_until: date | None = None,
    ) -> dict:
        """
        Apply one operation to many occurrences.

        Occurrences the caller may not touch are skipped and counted. Store
        writes are grouped to the batch limit; a failed group does not stop
        the remaining ones.
        """
        op = (operation or "").strip().upper()
        if op not in BULK_OPERATIONS:
            raise InvalidInput(f"Unknown bulk operation: {operation!r}", field="operation")
        ids = list(dict.fromkeys(i for i in occurrence_ids if i))
        if not ids:
            raise InvalidInput("No task ids given", field="ids")
        if len(ids) > self.config.bulk_max_ids:
            raise InvalidInput(f"At most {self.config.bulk_max_ids} ids per request", field="ids")

        new_status = None
        if op == "STATUS":
            new_status = Status.parse(status)
        elif op == "REASSIGN":
            require_privileged(actor, "Reassigning tasks")
            if not (assignee_uid or assignee_email):
                raise InvalidInput("An assignee is required", field="assignee")

        found = updated = deleted = forbidden = 0
        window = self.calendar_window()
        now = self.now()
        for group in chunked(ids, self.config.store_batch_limit):
            docs = self.store.get_many(TASKS, group)
            found += len(docs)
            allowed: list[Occurrence] = []
            for doc_id, data in docs.items():
                occ = Occurrence.from_record(doc_id, data)
                try:
                    if op == "DELETE":
                        require_can_delete(actor, [occ], False)
                    else:
                        require_can_modify(actor, occ)
                except Forbidden:
                    forbidden += 1
                    continue
                allowed.append(occ)

            if op == "DELETE":
                for occ in allowed:
                    try:
                        self.store.delete(TASKS, occ.id)
                    except Exception as e:
                        logger.warning(f"Bulk delete failed for task {occ.id}: {e}")
                        continue
                    deleted += 1
                    self._remove_calendar(occ)
                    self.audit.record(occ.id, "TASK_DELETED", actor.uid, actor.email, {"bulk": True})
                continue

            previous: dict[str, Status] = {}
            for occ in allowed:
                if op == "STATUS":
                    previous[occ.id] = apply_status(occ, new_status, now, status_note).previous
                elif op == "REASSIGN":
                    occ.assignee_uid = assignee_uid
                    occ.assignee_email = (assignee_email or "").strip()
                    occ.updated_at = now
                else:
                    occ.snoozed_until = snoozed_until
                    occ.updated_at = now

            try:
                self.store.batch_update(
                    TASKS, {o.id: o.to_record(self.config.timezone) for o in allowed}
                )
            except Exception as e:
                logger.error(f"Bulk {op} write failed for {len(allowed)} tasks: {e}")
                continue
            updated += len(allowed)

            for occ in allowed:
                if op == "STATUS":
                    self._after_status(actor, occ, previous[occ.id], window)
                else:
                    self.audit.record(occ.id, f"BULK_{op}", actor.uid, actor.email)

        logger.info(f"Bulk {op}: {len(ids)} requested, {found} found, {updated} updated, {deleted} deleted")
        return {
            "requested": len(ids),
            "found": found,
            "updatedCount": updated,
            "deletedCount": deleted,
            "forbiddenCount": forbidden,
        }

    def reassign_series(self, actor: Actor, series_id: str, assignee_uid: str | None, assignee_email: str) -> dict:
        require_privileged(actor, "Reassigning a series")
        occurrences = self.series_occurrences(series_id)
        if not occurrences:
            raise NotFound(f"Series {series_id} not found")

        now = self.now().isoformat()
        patch = {"assignee_uid": assignee_uid, "assignee_email": (assignee_email or "").strip(), "updated_at": now}
        for group in chunked([o.id for o in occurrences], self.config.store_batch_limit):
            self.store.batch_update(TASKS, {i: dict(patch) for i in group})

        self.audit.record(
            series_id,
            "SERIES_REASSIGN",
            actor.uid,
            actor.email,
            {"assigneeEmail": patch["assignee_email"], "count": len(occurrences)},
        )
        return {"updatedCount": len(occurrences)}

    # ============== Attachments ==============

    def add_attachment(
        self,
        actor: Actor,
        occurrence_id: str,
        filename: str,
        file_id: str,
        view_link: str = "",
        kind: str = "FILE",
    ) -> dict:
        if not filename or not file_id:
            raise InvalidInput("filename and file id are required", field="file_id")
        occ = self.get_occurrence(occurrence_id)
        require_can_modify(actor, occ)

        now = self.now()
        occ.attachments.append(
            Attachment(
                type=kind,
                filename=filename,
                file_id=file_id,
                view_link=view_link,
                uploaded_by=actor.email,
                uploaded_at=now,
            )
        )
        occ.updated_at = now
        self._save(occ)
        self.audit.record(occ.id, "ATTACHMENT_ADDED", actor.uid, actor.email, {"filename": filename})
        return {"ok": True, "attachmentCount": len(occ.attachments)}

    # ============== Queries ==============

    def list_occurrences(self, start: date | None = None, end: date | None = None, include_completed: bool = False) -> list[Occurrence]:
        """Occurrences due within [start, end], ordered by due date."""
        filters = []
        if start:
            filters.append(("due_date_ymd", ">=", to_storage(start)))
        if end:
            filters.append(("due_date_ymd", "<=", to_storage(end)))
        if not include_completed:
            filters.append(("status", "!=", Status.COMPLETED.value))
        occurrences = [Occurrence.from_record(i, d) for i, d in self.store.query(TASKS, filters)]
        return sorted(occurrences, key=lambda o: (o.due_date, o.title))


def occurrence_summary(occ: Occurrence) -> dict:
    """Human-facing view of an occurrence with display-format dates."""
    return {
        "id": occ.id,
        "title": occ.title,
        "client": occ.client_name,
        "dueDate": to_display(occ.due_date),
        "startDate": to_display(occ.start_date),
        "status": occ.status.value,
        "assignee": occ.assignee_email,
        "seriesId": occ.series_id,
        "occurrenceIndex": occ.occurrence_index,
        "occurrenceTotal": occ.occurrence_total,
        "startMailSent": occ.start_mail.sent,
    }
