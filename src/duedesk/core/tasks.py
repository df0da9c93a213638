"""Pure task domain model - no I/O dependencies."""

import re
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from enum import Enum

from .dates import Recurrence, instant_for, parse_ymd, start_date_for, to_storage
from .errors import InvalidInput


class Status(str, Enum):
    """Lifecycle status of an occurrence."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    CLIENT_PENDING = "CLIENT_PENDING"
    APPROVAL_PENDING = "APPROVAL_PENDING"
    COMPLETED = "COMPLETED"

    @classmethod
    def parse(cls, value: "str | Status") -> "Status":
        if isinstance(value, Status):
            return value
        raw = str(value or "").strip().upper()
        try:
            return cls(raw)
        except ValueError:
            raise InvalidInput(f"Invalid status: {value!r}", field="status") from None

    @property
    def is_active(self) -> bool:
        return self is not Status.COMPLETED


ACTIVE_STATUSES = [s for s in Status if s.is_active]


class Role(str, Enum):
    """Caller role. PARTNER and MANAGER are privileged."""

    PARTNER = "PARTNER"
    MANAGER = "MANAGER"
    ASSOCIATE = "ASSOCIATE"

    @property
    def privileged(self) -> bool:
        return self in (Role.PARTNER, Role.MANAGER)


def normalize_role(value: "str | Role | None") -> Role:
    """Fold legacy and missing role names into the current roles."""
    if isinstance(value, Role):
        return value
    raw = str(value or "").strip().upper()
    if raw in ("", "WORKER"):
        return Role.ASSOCIATE
    try:
        return Role(raw)
    except ValueError:
        raise InvalidInput(f"Unknown role: {value!r}", field="role") from None


CATEGORIES = ("INCOME_TAX", "GST", "TDS", "ROC", "ACCOUNTING", "AUDIT", "OTHER")
_CATEGORY_ALIASES = {
    "ITR": "INCOME_TAX",
    "INCOME": "INCOME_TAX",
    "INCOME-TAX": "INCOME_TAX",
    "INCOME_TAX_RETURN": "INCOME_TAX",
}
PRIORITIES = ("HIGH", "MEDIUM", "LOW")


def normalize_category(value: str | None) -> str:
    u = re.sub(r"\s+", "_", str(value or "OTHER").strip().upper())
    u = _CATEGORY_ALIASES.get(u, u)
    return u if u in CATEGORIES else "OTHER"


def normalize_priority(value: str | None) -> str:
    v = str(value or "MEDIUM").strip().upper()
    return v if v in PRIORITIES else "MEDIUM"


def as_address_list(value) -> list[str]:
    """Accept a list or a ';', ',' or ':' separated string of addresses."""
    if isinstance(value, (list, tuple)):
        return [str(s).strip() for s in value if str(s or "").strip()]
    if isinstance(value, str):
        return [s.strip() for s in re.split(r"[;,:]", value) if s.strip()]
    return []


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _str_to_dt(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class MailTrack:
    """
    Configuration and delivery state of one notification track.

    Each occurrence carries two independent tracks: start and completion.
    """

    enabled: bool = True
    subject: str = ""
    body: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    cc_assignee: bool = False
    cc_manager: bool = False
    sent: bool = False
    sent_at: datetime | None = None
    thread_id: str | None = None
    message_id: str | None = None
    rfc_message_id: str | None = None
    references: str | None = None

    @property
    def has_template(self) -> bool:
        return bool(self.subject or self.body)

    def config_only(self) -> "MailTrack":
        """Copy of the configuration with delivery state reset."""
        return replace(
            self,
            to=list(self.to),
            cc=list(self.cc),
            bcc=list(self.bcc),
            sent=False,
            sent_at=None,
            thread_id=None,
            message_id=None,
            rfc_message_id=None,
            references=None,
        )

    def to_record(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["sent_at"] = _dt_to_str(self.sent_at)
        return data

    @classmethod
    def from_record(cls, data: dict | None) -> "MailTrack":
        data = data or {}
        return cls(
            enabled=data.get("enabled", True) is not False,
            subject=data.get("subject") or "",
            body=data.get("body") or "",
            to=as_address_list(data.get("to")),
            cc=as_address_list(data.get("cc")),
            bcc=as_address_list(data.get("bcc")),
            cc_assignee=bool(data.get("cc_assignee")),
            cc_manager=bool(data.get("cc_manager")),
            sent=bool(data.get("sent")),
            sent_at=_str_to_dt(data.get("sent_at")),
            thread_id=data.get("thread_id"),
            message_id=data.get("message_id"),
            rfc_message_id=data.get("rfc_message_id"),
            references=data.get("references"),
        )


@dataclass
class Attachment:
    """An uploaded file reference. Attachments are append-only."""

    type: str
    filename: str
    file_id: str
    view_link: str
    uploaded_by: str
    uploaded_at: datetime

    def to_record(self) -> dict:
        return {
            "type": self.type,
            "filename": self.filename,
            "file_id": self.file_id,
            "view_link": self.view_link,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": self.uploaded_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: dict) -> "Attachment":
        return cls(
            type=data.get("type", ""),
            filename=data.get("filename", ""),
            file_id=data.get("file_id", ""),
            view_link=data.get("view_link", ""),
            uploaded_by=data.get("uploaded_by", ""),
            uploaded_at=_str_to_dt(data.get("uploaded_at")),
        )


@dataclass
class Client:
    """The party being served."""

    id: str
    name: str
    primary_email: str = ""
    cc_emails: list[str] = field(default_factory=list)
    bcc_emails: list[str] = field(default_factory=list)

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "primary_email": self.primary_email,
            "cc_emails": list(self.cc_emails),
            "bcc_emails": list(self.bcc_emails),
        }

    @classmethod
    def from_record(cls, client_id: str, data: dict) -> "Client":
        return cls(
            id=client_id,
            name=data.get("name", ""),
            primary_email=(data.get("primary_email") or "").strip(),
            cc_emails=as_address_list(data.get("cc_emails")),
            bcc_emails=as_address_list(data.get("bcc_emails")),
        )


@dataclass
class TaskTemplate:
    """User-supplied shape of a task before expansion."""

    title: str
    client_id: str
    client_name: str = ""
    category: str = "OTHER"
    type: str = "FILING"
    priority: str = "MEDIUM"
    recurrence: Recurrence = Recurrence.AD_HOC
    occurrence_count: int = 1
    trigger_days_before: int = 15
    assignee_uid: str | None = None
    assignee_email: str = ""
    start_mail: MailTrack = field(default_factory=MailTrack)
    completion_mail: MailTrack = field(default_factory=MailTrack)
    calendar_description: str = ""
    created_by: str | None = None


@dataclass
class Occurrence:
    """One materialized unit of work, possibly part of a series."""

    id: str
    title: str
    client_id: str
    due_date: date
    start_date: date
    trigger_days_before: int
    client_name: str = ""
    category: str = "OTHER"
    type: str = "FILING"
    priority: str = "MEDIUM"
    recurrence: Recurrence = Recurrence.AD_HOC
    series_id: str | None = None
    occurrence_index: int | None = None
    occurrence_total: int | None = None
    status: Status = Status.PENDING
    status_note: str = ""
    delay_reason: str | None = None
    delay_notes: str = ""
    snoozed_until: date | None = None
    assignee_uid: str | None = None
    assignee_email: str = ""
    calendar_description: str = ""
    calendar_event_id: str | None = None
    calendar_html_link: str | None = None
    calendar_due_event_id: str | None = None
    start_mail: MailTrack = field(default_factory=MailTrack)
    completion_mail: MailTrack = field(default_factory=MailTrack)
    attachments: list[Attachment] = field(default_factory=list)
    completion_requested_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is Status.COMPLETED

    def recompute_start(self) -> None:
        """Re-derive the start date from the due date and trigger window."""
        self.start_date = start_date_for(self.due_date, self.trigger_days_before)

    def to_record(self, zone: str) -> dict:
        """Serialize for the document store, with denormalized instants."""
        return {
            "title": self.title,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "category": self.category,
            "type": self.type,
            "priority": self.priority,
            "recurrence": self.recurrence.value,
            "series_id": self.series_id,
            "occurrence_index": self.occurrence_index,
            "occurrence_total": self.occurrence_total,
            "due_date_ymd": to_storage(self.due_date),
            "due_at": instant_for(self.due_date, zone).isoformat(),
            "start_date_ymd": to_storage(self.start_date),
            "start_at": instant_for(self.start_date, zone).isoformat(),
            "trigger_days_before": self.trigger_days_before,
            "status": self.status.value,
            "status_note": self.status_note,
            "delay_reason": self.delay_reason,
            "delay_notes": self.delay_notes,
            "snoozed_until_ymd": to_storage(self.snoozed_until) if self.snoozed_until else None,
            "assignee_uid": self.assignee_uid,
            "assignee_email": self.assignee_email,
            "calendar_description": self.calendar_description,
            "calendar_event_id": self.calendar_event_id,
            "calendar_html_link": self.calendar_html_link,
            "calendar_due_event_id": self.calendar_due_event_id,
            "start_mail": self.start_mail.to_record(),
            "completion_mail": self.completion_mail.to_record(),
            "attachments": [a.to_record() for a in self.attachments],
            "completion_requested_at": _dt_to_str(self.completion_requested_at),
            "completed_at": _dt_to_str(self.completed_at),
            "created_by": self.created_by,
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_record(cls, occurrence_id: str, data: dict) -> "Occurrence":
        """Create an Occurrence from a stored document."""
        snoozed = data.get("snoozed_until_ymd")
        try:
            recurrence = Recurrence.parse(data.get("recurrence"))
        except InvalidInput:
            recurrence = Recurrence.AD_HOC
        return cls(
            id=occurrence_id,
            title=data.get("title", ""),
            client_id=data.get("client_id", ""),
            client_name=data.get("client_name", ""),
            category=data.get("category", "OTHER"),
            type=data.get("type", "FILING"),
            priority=data.get("priority", "MEDIUM"),
            recurrence=recurrence,
            series_id=data.get("series_id"),
            occurrence_index=data.get("occurrence_index"),
            occurrence_total=data.get("occurrence_total"),
            due_date=parse_ymd(data["due_date_ymd"]),
            start_date=parse_ymd(data["start_date_ymd"]),
            trigger_days_before=int(data.get("trigger_days_before", 0)),
            status=Status.parse(data.get("status", "PENDING")),
            status_note=data.get("status_note", ""),
            delay_reason=data.get("delay_reason"),
            delay_notes=data.get("delay_notes", ""),
            snoozed_until=parse_ymd(snoozed) if snoozed else None,
            assignee_uid=data.get("assignee_uid"),
            assignee_email=data.get("assignee_email", ""),
            calendar_description=data.get("calendar_description", ""),
            calendar_event_id=data.get("calendar_event_id"),
            calendar_html_link=data.get("calendar_html_link"),
            calendar_due_event_id=data.get("calendar_due_event_id"),
            start_mail=MailTrack.from_record(data.get("start_mail")),
            completion_mail=MailTrack.from_record(data.get("completion_mail")),
            attachments=[Attachment.from_record(a) for a in data.get("attachments", [])],
            completion_requested_at=_str_to_dt(data.get("completion_requested_at")),
            completed_at=_str_to_dt(data.get("completed_at")),
            created_by=data.get("created_by"),
            created_at=_str_to_dt(data.get("created_at")),
            updated_at=_str_to_dt(data.get("updated_at")),
        )
