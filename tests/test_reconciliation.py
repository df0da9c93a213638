"""Tests for the scheduled reconciliation driver."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from duedesk.adapters.json_store import JsonFileStore
from duedesk.config import Config
from duedesk.core.errors import CollaboratorUnavailable
from duedesk.core.tasks import MailTrack, Occurrence, Status
from duedesk.ports.mailer import SentMail
from duedesk.reconciliation import JOB_RUNS, Reconciler
from duedesk.services import TaskService

NOW = datetime(2025, 1, 10, 3, 0, tzinfo=timezone.utc)
TODAY = date(2025, 1, 10)


def seed(store, task_id, **kwargs):
    defaults = dict(
        id=task_id,
        title=f"Task {task_id}",
        client_id="c1",
        client_name="Acme",
        due_date=TODAY + timedelta(days=15),
        start_date=TODAY,
        trigger_days_before=15,
        assignee_email="a@firm.com",
        start_mail=MailTrack(subject="Started {{taskTitle}}"),
    )
    defaults.update(kwargs)
    occ = Occurrence(**defaults)
    store.set("tasks", task_id, occ.to_record("Asia/Kolkata"))
    return occ


def sent_flag(store, task_id):
    return Occurrence.from_record(task_id, store.get("tasks", task_id)).start_mail.sent


@pytest.fixture
def store(tmp_path):
    store = JsonFileStore(tmp_path)
    store.set("clients", "c1", {"name": "Acme", "primary_email": "acme@client.com"})
    return store


@pytest.fixture
def mailer():
    mailer = MagicMock()
    mailer.send.return_value = SentMail("m1", "th1", "<m1@mail>", None)
    return mailer


@pytest.fixture
def make_reconciler(store, mailer):
    def _make(**config):
        config.setdefault("digest_to_assignees", False)
        service = TaskService(
            store, MagicMock(), mailer, MagicMock(), Config(**config), clock=lambda: NOW
        )
        return Reconciler(service)

    return _make


@pytest.fixture
def reconciler(make_reconciler):
    return make_reconciler()


class TestIdempotency:
    def test_second_run_same_day_is_skipped(self, reconciler, store, mailer):
        seed(store, "t1")

        first = reconciler.run_daily_reconciliation(TODAY)
        second = reconciler.run_daily_reconciliation(TODAY)

        assert first.sent_count == 1
        assert first.skipped is False
        assert second.skipped is True
        assert mailer.send.call_count == 1
        assert store.get(JOB_RUNS, "daily")["last_run_ymd"] == "2025-01-10"

    def test_forced_run_does_not_resend(self, reconciler, store, mailer):
        seed(store, "t1")
        reconciler.run_daily_reconciliation(TODAY)

        forced = reconciler.run_daily_reconciliation(TODAY, force=True)

        assert forced.skipped is False
        assert forced.sent_count == 0
        assert mailer.send.call_count == 1

    def test_next_day_runs_again(self, reconciler, store):
        reconciler.run_daily_reconciliation(TODAY)
        assert reconciler.run_daily_reconciliation(TODAY + timedelta(days=1)).skipped is False

    def test_defaults_to_today_in_firm_zone(self, reconciler):
        assert reconciler.run_daily_reconciliation().today == TODAY

    def test_malformed_marker_is_ignored(self, reconciler, store):
        store.set(JOB_RUNS, "daily", {"last_run_ymd": "yesterday"})
        assert reconciler.run_daily_reconciliation(TODAY).skipped is False

    def test_client_start_has_its_own_marker(self, reconciler, store):
        seed(store, "t1")

        start_only = reconciler.run_client_start(TODAY)
        daily = reconciler.run_daily_reconciliation(TODAY)

        assert start_only.sent_count == 1
        assert start_only.ran_digest is False
        assert daily.skipped is False
        assert daily.sent_count == 0
        assert store.get(JOB_RUNS, "client_start")["last_run_ymd"] == "2025-01-10"

    def test_crashed_start_pass_leaves_marker_unset(self, reconciler, store):
        with patch.object(reconciler, "start_pass", side_effect=RuntimeError("store offline")):
            result = reconciler.run_daily_reconciliation(TODAY)

        assert result.failed_count == 1
        assert store.get(JOB_RUNS, "daily") is None


class TestStartPass:
    def test_outcomes_are_counted(self, reconciler, store, mailer):
        store.set("clients", "c2", {"name": "Silent", "primary_email": ""})
        seed(store, "sent")
        seed(store, "no-template", start_mail=MailTrack())
        seed(store, "no-client", client_id="gone")
        seed(store, "no-recipient", client_id="c2")

        result = reconciler.run_daily_reconciliation(TODAY)

        assert result.sent_count == 1
        assert result.skipped_no_template == 1
        assert result.skipped_no_client == 1
        assert result.skipped_no_recipient == 1
        assert result.failed_count == 0
        assert mailer.send.call_args.args[:2] == (["acme@client.com"], "Started Task sent")

    def test_ineligible_occurrences_are_ignored(self, reconciler, store, mailer):
        seed(store, "tomorrow", start_date=TODAY + timedelta(days=1))
        seed(store, "done", status=Status.COMPLETED)
        seed(store, "already", start_mail=MailTrack(subject="Started", sent=True))

        result = reconciler.run_daily_reconciliation(TODAY)

        assert result.sent_count == 0
        mailer.send.assert_not_called()

    def test_one_failure_does_not_stop_the_others(self, reconciler, store, mailer):
        for task_id in ("t1", "t2", "t3"):
            seed(store, task_id)
        mailer.send.side_effect = [
            SentMail("m1", "th1", None, None),
            CollaboratorUnavailable("quota exceeded"),
            SentMail("m3", "th3", None, None),
        ]

        result = reconciler.run_daily_reconciliation(TODAY)

        assert result.sent_count == 2
        assert result.failed_count == 1
        assert [sent_flag(store, t) for t in ("t1", "t2", "t3")].count(False) == 1
        assert store.get(JOB_RUNS, "daily")["last_run_ymd"] == "2025-01-10"

    def test_unexpected_error_is_a_failure(self, reconciler, store):
        seed(store, "t1")
        with patch.object(reconciler.service, "send_start_mail", side_effect=KeyError("boom")):
            result = reconciler.run_daily_reconciliation(TODAY)
        assert result.failed_count == 1


class TestDigestPass:
    def test_sends_per_assignee_and_internal(self, make_reconciler, store, mailer):
        reconciler = make_reconciler(digest_to_assignees=True, digest_internal_emails=["ops@firm.com"])
        start = TODAY - timedelta(days=20)
        seed(store, "overdue", due_date=TODAY - timedelta(days=2), start_date=start)
        seed(store, "soon", due_date=TODAY + timedelta(days=3), start_date=start, assignee_email="b@firm.com")
        seed(store, "unassigned", due_date=TODAY, start_date=start, assignee_email="")
        seed(store, "far", due_date=TODAY + timedelta(days=60), start_date=TODAY + timedelta(days=45))
        seed(store, "done", due_date=TODAY, start_date=start, status=Status.COMPLETED)

        result = reconciler.run_daily_reconciliation(TODAY)

        assert result.ran_digest is True
        assert result.digest_sent == 3
        recipients = sorted(c.args[0][0] for c in mailer.send.call_args_list)
        assert recipients == ["a@firm.com", "b@firm.com", "ops@firm.com"]
        subjects = {c.args[1] for c in mailer.send.call_args_list}
        assert subjects == {"Daily Digest - 10-01-2025"}

        internal = next(c for c in mailer.send.call_args_list if c.args[0] == ["ops@firm.com"])
        body = internal.args[2]
        assert "Overdue (1)" in body
        assert "Task unassigned" in body
        assert "Task far" not in body
        assert "Task done" not in body

    def test_assignee_digest_only_lists_own_tasks(self, make_reconciler, store, mailer):
        reconciler = make_reconciler(digest_to_assignees=True)
        start = TODAY - timedelta(days=20)
        seed(store, "mine", due_date=TODAY, start_date=start)
        seed(store, "theirs", due_date=TODAY, start_date=start, assignee_email="b@firm.com")

        reconciler.run_daily_reconciliation(TODAY)

        mine = next(c for c in mailer.send.call_args_list if c.args[0] == ["a@firm.com"])
        assert mine.args[2].startswith("Your Daily Digest - 10-01-2025")
        assert "Task mine" in mine.args[2]
        assert "Task theirs" not in mine.args[2]

    def test_digest_failure_still_marks_run(self, make_reconciler, store, mailer):
        reconciler = make_reconciler(digest_internal_emails=["ops@firm.com"])
        mailer.send.side_effect = CollaboratorUnavailable("smtp down")

        result = reconciler.run_daily_reconciliation(TODAY)

        assert result.digest_sent == 0
        assert store.get(JOB_RUNS, "daily")["last_run_ymd"] == "2025-01-10"

    def test_empty_digest(self, make_reconciler, mailer):
        reconciler = make_reconciler(digest_internal_emails=["ops@firm.com"])
        reconciler.run_daily_reconciliation(TODAY)
        assert "No Tasks To Display" in mailer.send.call_args.args[2]
