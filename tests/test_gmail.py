"""Tests for the Gmail adapter."""

import base64
import email
from unittest.mock import MagicMock, patch

import pytest

from duedesk.adapters.gmail import GmailAdapter, build_message
from duedesk.core.errors import CollaboratorUnavailable


@pytest.fixture
def adapter(tmp_path):
    return GmailAdapter(tmp_path / "token.json", sender="desk@firm.com")


@pytest.fixture
def service():
    service = MagicMock()
    service.users().messages().send().execute.return_value = {"id": "m1", "threadId": "th1"}
    service.users().messages().get().execute.return_value = {
        "payload": {
            "headers": [
                {"name": "Message-Id", "value": "<m1@mail.gmail.com>"},
                {"name": "References", "value": "<m0@mail.gmail.com>"},
            ]
        }
    }
    return service


def sent_message(service):
    body = service.users().messages().send.call_args.kwargs["body"]
    return body, email.message_from_bytes(base64.urlsafe_b64decode(body["raw"]))


class TestBuildMessage:
    def test_headers(self):
        msg = build_message(["a@x.com", "b@x.com"], "Hi", "Body", "desk@firm.com", cc=["c@x.com"])
        assert msg["To"] == "a@x.com, b@x.com"
        assert msg["Cc"] == "c@x.com"
        assert msg["From"] == "desk@firm.com"
        assert msg["In-Reply-To"] is None

    def test_reply_headers(self):
        msg = build_message(["a@x.com"], "Re", "Body", in_reply_to="<m1@x>", references="<m0@x>")
        assert msg["In-Reply-To"] == "<m1@x>"
        assert msg["References"] == "<m0@x> <m1@x>"


class TestGmailAdapter:
    @patch("duedesk.adapters.gmail.GmailAdapter._build_service")
    def test_empty_to_is_noop(self, mock_build, adapter):
        assert adapter.send([], "Subject", "Body", cc=["a@x.com"]) is None
        mock_build.assert_not_called()

    @patch("duedesk.adapters.gmail.GmailAdapter._build_service")
    def test_new_message(self, mock_build, adapter, service):
        mock_build.return_value = service

        result = adapter.send(["c@x.com"], "Started GST", "Hello", cc=["a@x.com"], bcc=["z@x.com"])

        assert result.message_id == "m1"
        assert result.thread_id == "th1"
        assert result.rfc_message_id == "<m1@mail.gmail.com>"
        assert result.references == "<m0@mail.gmail.com>"
        body, msg = sent_message(service)
        assert "threadId" not in body
        assert msg["Subject"] == "Started GST"
        assert msg["Bcc"] == "z@x.com"

    @patch("duedesk.adapters.gmail.GmailAdapter._build_service")
    def test_reply_in_thread(self, mock_build, adapter, service):
        mock_build.return_value = service

        adapter.send(["c@x.com"], "Completed", "Done", thread_id="th0", in_reply_to="<m0@mail.gmail.com>")

        body, msg = sent_message(service)
        assert body["threadId"] == "th0"
        assert msg["In-Reply-To"] == "<m0@mail.gmail.com>"

    @patch("duedesk.adapters.gmail.GmailAdapter._build_service")
    def test_send_failure(self, mock_build, adapter, service):
        mock_build.return_value = service
        service.users().messages().send().execute.side_effect = RuntimeError("quota")
        with pytest.raises(CollaboratorUnavailable):
            adapter.send(["c@x.com"], "S", "B")

    @patch("duedesk.adapters.gmail.GmailAdapter._build_service")
    def test_header_lookup_failure_keeps_result(self, mock_build, adapter, service):
        mock_build.return_value = service
        service.users().messages().get().execute.side_effect = RuntimeError("boom")

        result = adapter.send(["c@x.com"], "S", "B")
        assert result.thread_id == "th1"
        assert result.rfc_message_id is None
