"""In-process cron for the reconciliation jobs."""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import Config, parse_job_time
from .reconciliation import Reconciler

logger = logging.getLogger(__name__)


def run_daily_job(reconciler: Reconciler) -> None:
    result = reconciler.run_daily_reconciliation()
    logger.info(f"Daily reconciliation: {result.to_dict()}")


def run_client_start_job(reconciler: Reconciler) -> None:
    result = reconciler.run_client_start()
    logger.info(f"Client start pass: {result.to_dict()}")


def setup_scheduler(reconciler: Reconciler, config: Config) -> BlockingScheduler:
    """Set up the scheduled reconciliation jobs."""
    scheduler = BlockingScheduler(timezone=config.timezone)

    jobs = (
        ("daily_reconciliation", config.daily_job_time, run_daily_job),
        ("client_start", config.client_start_job_time, run_client_start_job),
    )
    for job_id, when, func in jobs:
        try:
            hour, minute = parse_job_time(when)
        except ValueError:
            logger.warning(f"Invalid time format for {job_id}: {when}")
            continue
        scheduler.add_job(
            func,
            CronTrigger(hour=hour, minute=minute, timezone=config.timezone),
            args=[reconciler],
            id=job_id,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Scheduled {job_id} at {hour:02d}:{minute:02d} {config.timezone}")

    return scheduler
