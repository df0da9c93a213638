"""Tests for pure reconciliation decisions."""

from datetime import date, timedelta

import pytest

from duedesk.core.reconcile import (
    OccurrenceResult,
    ReconciliationResult,
    StartOutcome,
    bucket_for_digest,
    fold_results,
    format_digest,
    group_by_assignee,
    select_start_candidates,
    should_run,
)
from duedesk.core.tasks import MailTrack, Occurrence, Status


@pytest.fixture
def today():
    return date(2025, 1, 15)


def make_occ(occ_id, due, start=None, status=Status.PENDING, **kwargs):
    return Occurrence(
        id=occ_id,
        title=f"Task {occ_id}",
        client_id="c1",
        client_name="Acme",
        due_date=due,
        start_date=start or due,
        trigger_days_before=0,
        status=status,
        **kwargs,
    )


class TestShouldRun:
    def test_first_run(self, today):
        assert should_run(None, today)

    def test_same_day_is_noop(self, today):
        assert not should_run(today, today)

    def test_force(self, today):
        assert should_run(today, today, force=True)

    def test_new_day(self, today):
        assert should_run(today - timedelta(days=1), today)


class TestSelectStartCandidates:
    def test_filters(self, today):
        occs = [
            make_occ("due", today + timedelta(days=10), start=today),
            make_occ("sent", today + timedelta(days=10), start=today, start_mail=MailTrack(sent=True)),
            make_occ("done", today + timedelta(days=10), start=today, status=Status.COMPLETED),
            make_occ("later", today + timedelta(days=10), start=today + timedelta(days=1)),
            make_occ("client", today + timedelta(days=10), start=today, status=Status.CLIENT_PENDING),
        ]
        assert [o.id for o in select_start_candidates(occs, today)] == ["due", "client"]


class TestFoldResults:
    def test_counts(self, today):
        results = [
            OccurrenceResult("1", StartOutcome.SENT),
            OccurrenceResult("2", StartOutcome.SENT),
            OccurrenceResult("3", StartOutcome.SKIPPED_NO_TEMPLATE),
            OccurrenceResult("4", StartOutcome.SKIPPED_NO_RECIPIENT),
            OccurrenceResult("5", StartOutcome.SKIPPED_NO_CLIENT),
            OccurrenceResult("6", StartOutcome.FAILED, "boom"),
        ]
        result = fold_results(results, ReconciliationResult(today=today))
        assert result.sent_count == 2
        assert result.skipped_no_template == 1
        assert result.skipped_no_recipient == 1
        assert result.skipped_no_client == 1
        assert result.failed_count == 1
        assert result.today == today

    def test_empty(self):
        assert fold_results([]) == ReconciliationResult()

    def test_initial_is_not_mutated(self):
        initial = ReconciliationResult()
        fold_results([OccurrenceResult("1", StartOutcome.SENT)], initial)
        assert initial.sent_count == 0

    def test_to_dict(self, today):
        data = ReconciliationResult(today=today, sent_count=1, ran_digest=True).to_dict()
        assert data["today"] == "2025-01-15"
        assert data["sentCount"] == 1
        assert data["skippedNoTemplate"] == 0
        assert data["ranDigest"] is True
        assert data["skipped"] is False


class TestBucketForDigest:
    def test_buckets(self, today):
        occs = [
            make_occ("overdue", today - timedelta(days=5)),
            make_occ("today", today),
            make_occ("in3", today + timedelta(days=3)),
            make_occ("in7", today + timedelta(days=4)),
            make_occ("in15", today + timedelta(days=15)),
            make_occ("in30", today + timedelta(days=30)),
            make_occ("far", today + timedelta(days=31)),
            make_occ("done", today, status=Status.COMPLETED),
            make_occ("approval", today + timedelta(days=2), status=Status.APPROVAL_PENDING),
        ]
        b = bucket_for_digest(occs, today)

        assert [o.id for o in b.overdue] == ["overdue"]
        assert [o.id for o in b.due_today] == ["today"]
        assert [o.id for o in b.due_in_3] == ["approval", "in3"]
        assert [o.id for o in b.due_in_7] == ["in7"]
        assert [o.id for o in b.due_in_15] == ["in15"]
        assert [o.id for o in b.due_in_30] == ["in30"]
        assert [o.id for o in b.approval_pending] == ["approval"]
        assert not b.is_empty

    def test_completed_never_listed(self, today):
        b = bucket_for_digest([make_occ("done", today - timedelta(days=1), status=Status.COMPLETED)], today)
        assert b.is_empty


class TestFormatDigest:
    def test_empty_digest(self, today):
        text = format_digest(bucket_for_digest([], today), today)
        assert text == "Daily Digest - 15-01-2025\n\nNo Tasks To Display"

    def test_sections_and_notes(self, today):
        occ = make_occ("t1", today - timedelta(days=1), assignee_email="a@firm.com", status_note="Awaiting docs")
        text = format_digest(bucket_for_digest([occ], today), today)
        assert "Overdue (1)" in text
        assert "Task t1 | Client: Acme" in text
        assert "Due: 14-01-2025" in text
        assert "Note: Awaiting docs" in text
        assert "Due Today" not in text


class TestGroupByAssignee:
    def test_groups_and_drops_unassigned(self, today):
        occs = [
            make_occ("1", today, assignee_email="a@firm.com"),
            make_occ("2", today, assignee_email="b@firm.com"),
            make_occ("3", today, assignee_email="a@firm.com"),
            make_occ("4", today),
        ]
        grouped = group_by_assignee(occs)
        assert {k: [o.id for o in v] for k, v in grouped.items()} == {
            "a@firm.com": ["1", "3"],
            "b@firm.com": ["2"],
        }
