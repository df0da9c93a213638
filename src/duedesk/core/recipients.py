"""Pure recipient resolution for start and completion notifications."""

from dataclasses import dataclass, field

from .tasks import Client, Occurrence


@dataclass
class Recipients:
    """Effective To/CC/BCC for one notification."""

    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to or self.cc or self.bcc)

    def to_dict(self) -> dict:
        return {"to": list(self.to), "cc": list(self.cc), "bcc": list(self.bcc)}


def merge_address_lists(*lists: list[str] | None) -> list[str]:
    """
    Union of address lists, in order.

    Deduplication is case-insensitive; the first-seen casing wins. Blank
    entries are dropped.
    """
    out: list[str] = []
    seen: set[str] = set()
    for addresses in lists:
        for address in addresses or []:
            value = str(address or "").strip()
            if not value:
                continue
            key = value.lower()
            if key in seen:
                continue
            seen.add(key)
            out.append(value)
    return out


def _promote(to: list[str], cc: list[str], bcc: list[str]) -> Recipients:
    # Mail provider requires a primary recipient; promoted address stays in CC/BCC too
    if not to:
        if cc:
            to = [cc[0]]
        elif bcc:
            to = [bcc[0]]
    return Recipients(to=merge_address_lists(to), cc=cc, bcc=bcc)


def _internal_trail(
    task: Occurrence, cc_assignee: bool, cc_manager: bool, manager_email: str | None
) -> list[str]:
    extra = []
    if cc_assignee and task.assignee_email:
        extra.append(task.assignee_email)
    if cc_manager and manager_email:
        extra.append(manager_email)
    return extra


def _start_layers(
    client: Client, task: Occurrence, manager_email: str | None
) -> tuple[list[str], list[str], list[str]]:
    track = task.start_mail
    if track.enabled:
        to = track.to or ([client.primary_email] if client.primary_email else [])
    else:
        to = []

    cc = merge_address_lists(
        client.cc_emails,
        track.cc,
        _internal_trail(task, track.cc_assignee, track.cc_manager, manager_email),
    )
    bcc = merge_address_lists(client.bcc_emails, track.bcc)
    return merge_address_lists(to), cc, bcc


def resolve_start_recipients(
    client: Client, task: Occurrence, manager_email: str | None = None
) -> Recipients:
    """
    Recipients for the START notification.

    TO is the task override when set, else the client's primary address;
    empty when the task disables client start mail. CC/BCC union the client
    defaults, the task overrides and the optional internal trail.
    """
    to, cc, bcc = _start_layers(client, task, manager_email)
    return _promote(to, cc, bcc)


def resolve_completion_recipients(
    client: Client, task: Occurrence, manager_email: str | None = None
) -> Recipients:
    """
    Recipients for the COMPLETION notification (reply-all behaviour).

    Falls back to the start TO when no completion TO override is given, then
    layers completion CC/BCC and toggles on top of the start CC/BCC. TO is
    empty when the task disables client completion mail.
    """
    start = resolve_start_recipients(client, task, manager_email)
    track = task.completion_mail

    if not track.enabled:
        to = []
    else:
        to = merge_address_lists(track.to) if track.to else start.to
    cc = merge_address_lists(
        start.cc,
        track.cc,
        _internal_trail(task, track.cc_assignee, track.cc_manager, manager_email),
    )
    bcc = merge_address_lists(start.bcc, track.bcc)
    return _promote(to, cc, bcc)
