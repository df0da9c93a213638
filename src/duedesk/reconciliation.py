"""Scheduled reconciliation driver.

Runs at most once per civil day per job. The start pass sends due start
notifications, the digest pass mails the bucketed overview. Nothing raised
inside a pass escapes run(); failures show up in the returned counters and
the log.
"""

import logging
from dataclasses import replace
from datetime import date, timedelta

from .core.dates import parse_ymd, to_storage
from .core.errors import CollaboratorUnavailable, InvalidInput
from .core.reconcile import (
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
from .core.tasks import Occurrence, Status
from .services import TASKS, TaskService

logger = logging.getLogger(__name__)

JOB_RUNS = "jobRuns"
DAILY_JOB = "daily"
CLIENT_START_JOB = "client_start"


class Reconciler:
    """Drives the daily and client-start passes over the task store."""

    def __init__(self, service: TaskService):
        self.service = service
        self.store = service.store
        self.config = service.config

    # ============== Last-run markers ==============

    def last_run(self, job: str) -> date | None:
        data = self.store.get(JOB_RUNS, job) or {}
        value = data.get("last_run_ymd")
        try:
            return parse_ymd(value) if value else None
        except InvalidInput:
            logger.warning(f"Ignoring malformed last-run marker for {job}: {value!r}")
            return None

    def mark_run(self, job: str, today: date) -> None:
        self.store.merge(
            JOB_RUNS,
            job,
            {"last_run_ymd": to_storage(today), "updated_at": self.service.now().isoformat()},
        )

    # ============== Entry points ==============

    def run_daily_reconciliation(self, today: date | None = None, force: bool = False) -> ReconciliationResult:
        """Start pass plus digest, once per civil day."""
        return self.run(DAILY_JOB, today, force, with_digest=True)

    def run_client_start(self, today: date | None = None, force: bool = False) -> ReconciliationResult:
        """Start pass only, under its own marker."""
        return self.run(CLIENT_START_JOB, today, force, with_digest=False)

    def run(self, job: str, today: date | None, force: bool, with_digest: bool) -> ReconciliationResult:
        today = today or self.service.today()
        try:
            last = self.last_run(job)
        except Exception as e:
            logger.error(f"Could not read last-run marker for {job}: {e}")
            last = None

        if not should_run(last, today, force):
            logger.info(f"Job {job} already ran for {today}, skipping")
            return ReconciliationResult(today=today, skipped=True)

        logger.info(f"Running {job} reconciliation for {today}{' (forced)' if force else ''}")
        try:
            result = fold_results(self.start_pass(today), ReconciliationResult(today=today))
        except Exception as e:
            # Leave the marker unset so a retry of the tick can redo the pass
            logger.exception(f"Start pass failed for {today}: {e}")
            return ReconciliationResult(today=today, failed_count=1)

        if with_digest:
            try:
                result = replace(result, ran_digest=True, digest_sent=self.digest_pass(today))
            except Exception as e:
                logger.exception(f"Digest pass failed for {today}: {e}")

        try:
            self.mark_run(job, today)
        except Exception as e:
            logger.error(f"Could not write last-run marker for {job}: {e}")

        logger.info(f"Job {job} finished: {result.to_dict()}")
        return result

    # ============== Passes ==============

    def _load(self, docs: list[tuple[str, dict]]) -> list[Occurrence]:
        occurrences = []
        for doc_id, data in docs:
            try:
                occurrences.append(Occurrence.from_record(doc_id, data))
            except (InvalidInput, KeyError) as e:
                logger.warning(f"Skipping malformed task {doc_id}: {e}")
        return occurrences

    def start_pass(self, today: date) -> list[OccurrenceResult]:
        """Send every start notification due today that has not gone out yet."""
        docs = self.store.query(TASKS, [("start_date_ymd", "==", to_storage(today))])
        candidates = select_start_candidates(self._load(docs), today)
        window = self.service.calendar_window()

        results = []
        for occ in candidates:
            try:
                result = self.service.send_start_mail(occ, window)
            except Exception as e:
                logger.warning(f"Start notification failed for task {occ.id}: {e}")
                result = OccurrenceResult(occ.id, StartOutcome.FAILED, str(e))
            results.append(result)
        return results

    def digest_occurrences(self, today: date) -> list[Occurrence]:
        """Active occurrences that are overdue or due within the digest window."""
        horizon = today + timedelta(days=self.config.digest_window_days)
        docs = self.store.query(
            TASKS,
            [
                ("due_date_ymd", "<=", to_storage(horizon)),
                ("status", "!=", Status.COMPLETED.value),
            ],
        )
        return self._load(docs)

    def _send_digest(self, to: list[str], subject: str, body: str) -> bool:
        try:
            return self.service.mailer.send(to, subject, body) is not None
        except CollaboratorUnavailable as e:
            logger.warning(f"Digest to {', '.join(to)} failed: {e}")
            return False

    def digest_pass(self, today: date) -> int:
        """Mail the digest to assignees and internal addresses. Returns sends."""
        occurrences = self.digest_occurrences(today)
        subject = f"Daily Digest - {today.strftime('%d-%m-%Y')}"
        sent = 0

        if self.config.digest_to_assignees:
            for email, mine in group_by_assignee(occurrences).items():
                body = format_digest(bucket_for_digest(mine, today), today, "Your Daily Digest")
                sent += self._send_digest([email], subject, body)

        internal = self.config.digest_internal_emails
        if internal:
            body = format_digest(bucket_for_digest(occurrences, today), today)
            sent += self._send_digest(list(internal), subject, body)

        logger.info(f"Digest for {today}: {len(occurrences)} tasks, {sent} mails sent")
        return sent
