"""Gmail API adapter."""

import base64
import logging
from email.mime.text import MIMEText
from pathlib import Path

from duedesk.core.errors import CollaboratorUnavailable
from duedesk.ports.mailer import SentMail

from .google_credentials import load_credentials

logger = logging.getLogger(__name__)


def build_message(
    to: list[str],
    subject: str,
    body: str,
    sender: str = "",
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
    in_reply_to: str | None = None,
    references: str | None = None,
) -> MIMEText:
    """Plain-text MIME message with optional reply headers."""
    msg = MIMEText(body, "plain", "utf-8")
    msg["To"] = ", ".join(to)
    if cc:
        msg["Cc"] = ", ".join(cc)
    if bcc:
        msg["Bcc"] = ", ".join(bcc)
    if sender:
        msg["From"] = sender
    msg["Subject"] = subject
    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
        msg["References"] = f"{references} {in_reply_to}".strip() if references else in_reply_to
    return msg


def _header(message: dict, name: str) -> str | None:
    for header in message.get("payload", {}).get("headers", []):
        if header.get("name", "").lower() == name.lower():
            return header.get("value")
    return None


class GmailAdapter:
    """
    Sends notifications through the Gmail API.

    Implements Mailer protocol.
    """

    def __init__(self, token_path: Path, sender: str = ""):
        self.token_path = Path(token_path).expanduser()
        self.sender = sender

    def _build_service(self):
        """Build a Gmail API service."""
        from googleapiclient.discovery import build

        creds = load_credentials(self.token_path)
        if not creds:
            raise CollaboratorUnavailable("Gmail credentials unavailable")
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

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
        if not to:
            return None

        msg = build_message(to, subject, body, self.sender, cc, bcc, in_reply_to, references)
        payload = {"raw": base64.urlsafe_b64encode(msg.as_bytes()).decode()}
        if thread_id:
            payload["threadId"] = thread_id

        try:
            service = self._build_service()
            sent = service.users().messages().send(userId="me", body=payload).execute()
        except CollaboratorUnavailable:
            raise
        except Exception as e:
            raise CollaboratorUnavailable(f"Gmail send failed: {e}") from e

        result = SentMail(message_id=sent.get("id"), thread_id=sent.get("threadId"))
        try:
            meta = (
                service.users()
                .messages()
                .get(
                    userId="me",
                    id=result.message_id,
                    format="metadata",
                    metadataHeaders=["Message-ID", "References"],
                )
                .execute()
            )
            result.rfc_message_id = _header(meta, "Message-ID")
            result.references = _header(meta, "References")
        except Exception as e:
            # The message went out; only later threading headers are missing
            logger.warning(f"Could not read headers of sent message {result.message_id}: {e}")
        return result
