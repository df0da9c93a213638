"""Mail service interface."""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class SentMail:
    """Provider identifiers of a sent message, kept for later threading."""

    message_id: str | None = None
    thread_id: str | None = None
    rfc_message_id: str | None = None
    references: str | None = None


class Mailer(Protocol):
    """Sends new messages or replies into an existing thread."""

    def send(
        self,
        to: list[str],
        subject: str,
        body: str,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        thread_id: str | None = None,
        in_reply_to: str | None = None,
        references: str | None = None,
    ) -> SentMail | None:
        """
        Send a message. With a thread_id it is sent as a reply.

        An empty `to` list is a no-op returning None.
        """
        ...
