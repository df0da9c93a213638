"""Tests for scheduler wiring."""

from unittest.mock import MagicMock

from duedesk.config import Config
from duedesk.scheduler import run_client_start_job, run_daily_job, setup_scheduler


class TestSetupScheduler:
    def test_registers_both_jobs(self):
        reconciler = MagicMock()
        scheduler = setup_scheduler(reconciler, Config(daily_job_time="05:00", client_start_job_time="09:30"))

        jobs = {job.id: job for job in scheduler.get_jobs()}
        assert set(jobs) == {"daily_reconciliation", "client_start"}
        assert jobs["daily_reconciliation"].func is run_daily_job
        assert jobs["client_start"].args == (reconciler,)
        assert jobs["client_start"].max_instances == 1

    def test_invalid_time_skips_job(self):
        scheduler = setup_scheduler(MagicMock(), Config(client_start_job_time="9am"))
        assert [job.id for job in scheduler.get_jobs()] == ["daily_reconciliation"]


class TestJobs:
    def test_daily_job_runs_reconciliation(self):
        reconciler = MagicMock()
        run_daily_job(reconciler)
        reconciler.run_daily_reconciliation.assert_called_once_with()

    def test_client_start_job(self):
        reconciler = MagicMock()
        run_client_start_job(reconciler)
        reconciler.run_client_start.assert_called_once_with()
