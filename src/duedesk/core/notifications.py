"""Pure notification rendering - builds subjects and bodies, sends nothing."""

from dataclasses import dataclass

from .calendar import CalendarWindow, add_to_calendar_url
from .dates import to_display
from .tasks import Client, Occurrence

DEFAULT_START_SUBJECT = "We started {{taskTitle}}"
DEFAULT_START_BODY = (
    "Dear {{clientName}},\n\nWe started work on {{taskTitle}}.\nDue: {{dueDate}}\n\n"
    "Regards,\n{{signature}}"
)
DEFAULT_COMPLETION_SUBJECT = "Completed: {{taskTitle}}"
DEFAULT_COMPLETION_BODY = (
    "Dear {{clientName}},\n\n"
    "We have completed: {{taskTitle}}\n"
    "Due date: {{dueDate}}\n"
    "Completed at: {{completedAt}}\n"
    "Status note: {{statusNote}}\n\n"
    "Regards,\n{{signature}}"
)


@dataclass
class RenderedMail:
    subject: str
    body: str
    add_to_calendar_url: str | None = None


def expand_newline_tokens(text: str) -> str:
    """Turn literal '\\n' tokens from stored templates into newlines."""
    return str(text or "").replace("\\r\\n", "\n").replace("\\n", "\n")


def render_template(text: str, variables: dict) -> str:
    """Replace {{name}} placeholders; unknown placeholders are left alone."""
    out = expand_newline_tokens(text)
    for key, value in variables.items():
        out = out.replace("{{" + key + "}}", "" if value is None else str(value))
    return out


def _subject_line(text: str) -> str:
    return " ".join(text.splitlines()).strip()


def render_start_mail(
    occ: Occurrence,
    client: Client,
    window: CalendarWindow,
    signature: str = "Compliance Team",
) -> RenderedMail:
    """Render the START notification with an add-to-calendar link appended."""
    details = (
        f"Client: {client.name}\n"
        f"Task: {occ.title}\n"
        f"Start: {to_display(occ.start_date)}\n"
        f"Due: {to_display(occ.due_date)}\n"
    )
    url = add_to_calendar_url(f"START: {occ.title or 'Task'}", occ.start_date, window, details)
    variables = {
        "clientName": client.name,
        "taskTitle": occ.title,
        "startDate": to_display(occ.start_date),
        "dueDate": to_display(occ.due_date),
        "addToCalendarUrl": url,
        "signature": signature,
    }
    track = occ.start_mail
    subject = render_template(track.subject or DEFAULT_START_SUBJECT, variables)
    body = render_template(track.body or DEFAULT_START_BODY, variables)
    body = f"{body}\n\n---\nAdd to your Google Calendar:\n{url}"
    return RenderedMail(subject=_subject_line(subject), body=body, add_to_calendar_url=url)


def render_completion_mail(
    occ: Occurrence,
    client: Client,
    completed_at_text: str,
    signature: str = "Compliance Team",
) -> RenderedMail:
    """Render the COMPLETION notification."""
    variables = {
        "clientName": client.name,
        "taskTitle": occ.title,
        "startDate": to_display(occ.start_date),
        "dueDate": to_display(occ.due_date),
        "completedAt": completed_at_text,
        "statusNote": occ.status_note,
        "signature": signature,
    }
    track = occ.completion_mail
    subject = render_template(track.subject or DEFAULT_COMPLETION_SUBJECT, variables)
    body = render_template(track.body or DEFAULT_COMPLETION_BODY, variables)
    return RenderedMail(subject=_subject_line(subject), body=body)
