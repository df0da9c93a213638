"""Tests for recipient resolution."""

from datetime import date

import pytest

from duedesk.core.recipients import (
    merge_address_lists,
    resolve_completion_recipients,
    resolve_start_recipients,
)
from duedesk.core.tasks import Client, MailTrack, Occurrence


def make_task(**kwargs) -> Occurrence:
    defaults = dict(
        id="t1",
        title="GST Return",
        client_id="c1",
        due_date=date(2025, 1, 31),
        start_date=date(2025, 1, 16),
        trigger_days_before=15,
    )
    defaults.update(kwargs)
    return Occurrence(**defaults)


@pytest.fixture
def client():
    return Client(id="c1", name="Acme", primary_email="c@x.com")


class TestMergeAddressLists:
    def test_dedupes_case_insensitively_keeping_first_casing(self):
        assert merge_address_lists(["A@x.com"], ["a@X.com", "b@x.com"]) == ["A@x.com", "b@x.com"]

    def test_drops_blanks_and_none(self):
        assert merge_address_lists(None, ["", "  ", "c@x.com "]) == ["c@x.com"]

    def test_empty(self):
        assert merge_address_lists() == []


class TestResolveStartRecipients:
    def test_client_primary_is_default_to(self, client):
        task = make_task(start_mail=MailTrack(cc=["a@x.com"]))
        r = resolve_start_recipients(client, task)
        assert r.to == ["c@x.com"]
        assert r.cc == ["a@x.com"]

    def test_task_override_wins(self, client):
        task = make_task(start_mail=MailTrack(to=["owner@x.com"]))
        assert resolve_start_recipients(client, task).to == ["owner@x.com"]

    def test_cc_promoted_when_no_primary(self):
        client = Client(id="c1", name="Acme")
        task = make_task(start_mail=MailTrack(cc=["a@x.com"]))
        r = resolve_start_recipients(client, task)
        assert r.to == ["a@x.com"]
        assert r.cc == ["a@x.com"]

    def test_bcc_promoted_when_no_cc(self):
        client = Client(id="c1", name="Acme", bcc_emails=["audit@x.com"])
        r = resolve_start_recipients(client, make_task())
        assert r.to == ["audit@x.com"]
        assert r.bcc == ["audit@x.com"]

    def test_disabled_client_mail_leaves_to_empty(self, client):
        task = make_task(start_mail=MailTrack(enabled=False))
        r = resolve_start_recipients(client, task)
        assert r.is_empty

    def test_disabled_client_mail_still_reaches_cc(self, client):
        task = make_task(start_mail=MailTrack(enabled=False, cc=["ops@firm.com"]))
        r = resolve_start_recipients(client, task)
        assert r.to == ["ops@firm.com"]

    def test_union_of_client_and_task_cc(self):
        client = Client(id="c1", name="Acme", primary_email="c@x.com", cc_emails=["A@x.com"])
        task = make_task(start_mail=MailTrack(cc=["a@x.com", "b@x.com"]))
        assert resolve_start_recipients(client, task).cc == ["A@x.com", "b@x.com"]

    def test_internal_trail_toggles(self, client):
        task = make_task(
            assignee_email="staff@firm.com",
            start_mail=MailTrack(cc_assignee=True, cc_manager=True),
        )
        r = resolve_start_recipients(client, task, manager_email="boss@firm.com")
        assert r.cc == ["staff@firm.com", "boss@firm.com"]

    def test_toggles_off_by_default(self, client):
        task = make_task(assignee_email="staff@firm.com")
        r = resolve_start_recipients(client, task, manager_email="boss@firm.com")
        assert r.cc == []


class TestResolveCompletionRecipients:
    def test_falls_back_to_start_to(self, client):
        r = resolve_completion_recipients(client, make_task())
        assert r.to == ["c@x.com"]

    def test_completion_override(self, client):
        task = make_task(completion_mail=MailTrack(to=["done@x.com"]))
        assert resolve_completion_recipients(client, task).to == ["done@x.com"]

    def test_layers_completion_cc_on_start_cc(self, client):
        task = make_task(
            start_mail=MailTrack(cc=["a@x.com"]),
            completion_mail=MailTrack(cc=["b@x.com", "A@x.com"], bcc=["z@x.com"]),
        )
        r = resolve_completion_recipients(client, task)
        assert r.cc == ["a@x.com", "b@x.com"]
        assert r.bcc == ["z@x.com"]

    def test_completion_toggles(self, client):
        task = make_task(assignee_email="staff@firm.com", completion_mail=MailTrack(cc_assignee=True))
        assert "staff@firm.com" in resolve_completion_recipients(client, task).cc

    def test_disabled_completion_mail_leaves_to_empty(self, client):
        task = make_task(completion_mail=MailTrack(enabled=False, to=["boss@x.com"]))
        assert resolve_completion_recipients(client, task).to == []
