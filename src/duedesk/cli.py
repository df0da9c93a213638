"""duedesk CLI - recurring compliance task desk."""

import json
import logging
import sys
from datetime import date

import click

from .adapters import (
    GmailAdapter,
    GoogleCalendarAdapter,
    GoogleIdentityVerifier,
    JsonFileStore,
    StoreAuditSink,
)
from .adapters.google_credentials import authenticate
from .config import Config, load_config
from .core.dates import parse_any, to_display
from .core.errors import DueDeskError
from .core.lifecycle import Actor, MailPatch, TemplatePatch
from .core.tasks import MailTrack, TaskTemplate, as_address_list
from .reconciliation import Reconciler
from .scheduler import setup_scheduler
from .services import TaskService, occurrence_summary

logger = logging.getLogger(__name__)


def build_service(config: Config) -> TaskService:
    """Wire the service to the configured store and Google collaborators."""
    store = JsonFileStore(config.data_path, batch_limit=config.store_batch_limit)
    return TaskService(
        store=store,
        calendar=GoogleCalendarAdapter(config.token_path, config.calendar_id),
        mailer=GmailAdapter(config.token_path, config.mail_from),
        audit=StoreAuditSink(store),
        config=config,
    )


def resolve_actor(service: TaskService, token: str | None) -> Actor:
    verifier = GoogleIdentityVerifier(service.store, service.config.google_client_id)
    return verifier.verify(token or "")


def _fail(e: Exception) -> None:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _emit(result: dict, as_json: bool, message: str) -> None:
    if as_json:
        click.echo(json.dumps(result, indent=2, default=str))
    else:
        click.echo(message)


def _optional_date(value: str | None) -> date | None:
    return parse_any(value) if value else None


def token_option(f):
    return click.option(
        "--token",
        envvar="DUEDESK_TOKEN",
        help="Google ID token of the caller (or DUEDESK_TOKEN).",
    )(f)


def json_option(f):
    return click.option("--json", "as_json", is_flag=True, help="Output as JSON")(f)


def template_options(f):
    """Options shared by create-series and create-task."""
    options = [
        click.option("--title", required=True, help="Task title"),
        click.option("--client", "client_name", default="", help="Client name (found or created)"),
        click.option("--client-id", default="", help="Existing client id"),
        click.option("--client-email", default=None, help="Primary email for a new client"),
        click.option("--due", required=True, help="Due date, DD-MM-YYYY"),
        click.option("--trigger-days", type=int, default=None, help="Days before due to start"),
        click.option("--assignee-uid", default=None),
        click.option("--assignee-email", default=""),
        click.option("--category", default="OTHER"),
        click.option("--type", "task_type", default="FILING"),
        click.option("--priority", default="MEDIUM"),
        click.option("--description", default="", help="Extra calendar description"),
        click.option("--start-subject", default=""),
        click.option("--start-body", default=""),
        click.option("--start-to", default="", help="Addresses separated by ; , or :"),
        click.option("--start-cc", default=""),
        click.option("--start-bcc", default=""),
        click.option("--no-client-start-mail", is_flag=True, help="Do not address the client"),
        click.option("--no-client-completion-mail", is_flag=True, help="Do not mail the client on completion"),
        click.option("--completion-subject", default=""),
        click.option("--completion-body", default=""),
        click.option("--completion-to", default=""),
        click.option("--completion-cc", default=""),
        click.option("--completion-bcc", default=""),
        click.option("--cc-assignee", is_flag=True),
        click.option("--cc-manager", is_flag=True),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _template_from(config: Config, opts: dict, recurrence: str = "AD_HOC", count: int = 1) -> TaskTemplate:
    trigger = opts["trigger_days"]
    return TaskTemplate(
        title=opts["title"],
        client_id=opts["client_id"],
        client_name=opts["client_name"],
        category=opts["category"],
        type=opts["task_type"],
        priority=opts["priority"],
        recurrence=recurrence,
        occurrence_count=count,
        trigger_days_before=config.default_trigger_days if trigger is None else trigger,
        assignee_uid=opts["assignee_uid"],
        assignee_email=opts["assignee_email"],
        calendar_description=opts["description"],
        start_mail=MailTrack(
            enabled=not opts["no_client_start_mail"],
            subject=opts["start_subject"],
            body=opts["start_body"],
            to=as_address_list(opts["start_to"]),
            cc=as_address_list(opts["start_cc"]),
            bcc=as_address_list(opts["start_bcc"]),
            cc_assignee=opts["cc_assignee"],
            cc_manager=opts["cc_manager"],
        ),
        completion_mail=MailTrack(
            enabled=not opts["no_client_completion_mail"],
            subject=opts["completion_subject"],
            body=opts["completion_body"],
            to=as_address_list(opts["completion_to"]),
            cc=as_address_list(opts["completion_cc"]),
            bcc=as_address_list(opts["completion_bcc"]),
            cc_assignee=opts["cc_assignee"],
            cc_manager=opts["cc_manager"],
        ),
    )


@click.group()
@click.version_option()
@click.pass_context
def main(ctx):
    """duedesk - recurring compliance task desk."""
    config = load_config()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, config.log_level, logging.INFO),
    )
    ctx.obj = config


@main.command("create-series")
@template_options
@click.option("--recurrence", default="MONTHLY", help="DAILY, WEEKLY, MONTHLY, QUARTERLY...")
@click.option("--count", type=int, default=12, help="Number of occurrences")
@token_option
@json_option
@click.pass_obj
def create_series(config: Config, recurrence: str, count: int, token: str, as_json: bool, **opts):
    """Create a recurring series of tasks."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        template = _template_from(config, opts, recurrence, count)
        result = service.create_series(actor, template, parse_any(opts["due"]), opts["client_email"])
    except DueDeskError as e:
        _fail(e)

    series = f" (series {result['seriesId']})" if result["seriesId"] else ""
    _emit(result, as_json, f"Created {result['createdCount']} task(s){series}")


@main.command("create-task")
@template_options
@token_option
@json_option
@click.pass_obj
def create_task(config: Config, token: str, as_json: bool, **opts):
    """Create a single ad-hoc task."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        template = _template_from(config, opts)
        result = service.create_task(actor, template, parse_any(opts["due"]), opts["client_email"])
    except DueDeskError as e:
        _fail(e)

    _emit(result, as_json, f"Created task {result['id']}")


@main.command()
@click.argument("series_id")
@click.option("--count", type=int, default=1, help="Occurrences to add")
@token_option
@json_option
@click.pass_obj
def append(config: Config, series_id: str, count: int, token: str, as_json: bool):
    """Add occurrences to the end of a series."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.append_to_series(actor, series_id, count)
    except DueDeskError as e:
        _fail(e)

    _emit(
        result,
        as_json,
        f"Added {result['createdCount']} task(s); series now has {result['newOccurrenceTotal']}",
    )


def _mail_patch(subject: str | None, body: str | None) -> MailPatch | None:
    if subject is None and body is None:
        return None
    return MailPatch(subject=subject, body=body)


@main.command()
@click.argument("occurrence_id")
@click.option("--series", "whole_series", is_flag=True, help="Apply to the whole series")
@click.option("--title", default=None)
@click.option("--category", default=None)
@click.option("--type", "task_type", default=None)
@click.option("--priority", default=None)
@click.option("--trigger-days", type=int, default=None)
@click.option("--assignee-uid", default=None)
@click.option("--assignee-email", default=None)
@click.option("--due", default=None, help="New due date, DD-MM-YYYY (single task only)")
@click.option("--snooze-until", default=None, help="DD-MM-YYYY")
@click.option("--clear-snooze", is_flag=True)
@click.option("--description", default=None)
@click.option("--start-subject", default=None)
@click.option("--start-body", default=None)
@click.option("--completion-subject", default=None)
@click.option("--completion-body", default=None)
@token_option
@json_option
@click.pass_obj
def edit(config: Config, occurrence_id: str, whole_series: bool, token: str, as_json: bool, **opts):
    """Edit a task or its whole series."""
    try:
        patch = TemplatePatch(
            title=opts["title"],
            category=opts["category"],
            type=opts["task_type"],
            priority=opts["priority"],
            trigger_days_before=opts["trigger_days"],
            assignee_uid=opts["assignee_uid"],
            assignee_email=opts["assignee_email"],
            snoozed_until=_optional_date(opts["snooze_until"]),
            clear_snooze=opts["clear_snooze"],
            calendar_description=opts["description"],
            due_date=_optional_date(opts["due"]),
            start_mail=_mail_patch(opts["start_subject"], opts["start_body"]),
            completion_mail=_mail_patch(opts["completion_subject"], opts["completion_body"]),
        )
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.edit(actor, occurrence_id, patch, whole_series)
    except DueDeskError as e:
        _fail(e)

    failed = f"; {result['failedCount']} failed" if result["failedCount"] else ""
    _emit(result, as_json, f"Updated {result['updatedCount']} task(s){failed}")


@main.command()
@click.argument("occurrence_id")
@click.option("--series", "whole_series", is_flag=True, help="Delete the whole series")
@token_option
@json_option
@click.pass_obj
def delete(config: Config, occurrence_id: str, whole_series: bool, token: str, as_json: bool):
    """Delete a task or its whole series."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.delete(actor, occurrence_id, whole_series)
    except DueDeskError as e:
        _fail(e)

    failed = f"; {result['failedCount']} failed" if result["failedCount"] else ""
    _emit(result, as_json, f"Deleted {result['deletedCount']} task(s){failed}")


@main.command()
@click.argument("occurrence_id")
@click.argument("new_status")
@click.option("--note", default=None, help="Status note")
@click.option("--delay-reason", default=None)
@click.option("--delay-notes", default=None)
@token_option
@json_option
@click.pass_obj
def status(
    config: Config,
    occurrence_id: str,
    new_status: str,
    note: str | None,
    delay_reason: str | None,
    delay_notes: str | None,
    token: str,
    as_json: bool,
):
    """Move a task to a new status."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.advance_status(actor, occurrence_id, new_status, note, delay_reason, delay_notes)
    except DueDeskError as e:
        _fail(e)

    _emit(result, as_json, f"{occurrence_id} -> {new_status.upper()}")


@main.command()
@click.argument("operation", type=click.Choice(["STATUS", "REASSIGN", "SNOOZE", "DELETE"], case_sensitive=False))
@click.argument("occurrence_ids", nargs=-1, required=True)
@click.option("--status", "new_status", default=None)
@click.option("--note", default=None)
@click.option("--assignee-uid", default=None)
@click.option("--assignee-email", default=None)
@click.option("--snooze-until", default=None, help="DD-MM-YYYY; omit to clear")
@token_option
@json_option
@click.pass_obj
def bulk(
    config: Config,
    operation: str,
    occurrence_ids: tuple[str, ...],
    new_status: str | None,
    note: str | None,
    assignee_uid: str | None,
    assignee_email: str | None,
    snooze_until: str | None,
    token: str,
    as_json: bool,
):
    """Apply one operation to many tasks."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.bulk(
            actor,
            operation,
            list(occurrence_ids),
            status=new_status,
            status_note=note,
            assignee_uid=assignee_uid,
            assignee_email=assignee_email,
            snoozed_until=_optional_date(snooze_until),
        )
    except DueDeskError as e:
        _fail(e)

    _emit(
        result,
        as_json,
        f"{result['requested']} requested, {result['found']} found, "
        f"{result['updatedCount']} updated, {result['deletedCount']} deleted",
    )


@main.command("reassign-series")
@click.argument("series_id")
@click.option("--assignee-uid", default=None)
@click.option("--assignee-email", required=True)
@token_option
@json_option
@click.pass_obj
def reassign_series(config: Config, series_id: str, assignee_uid: str | None, assignee_email: str, token: str, as_json: bool):
    """Reassign every task of a series."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.reassign_series(actor, series_id, assignee_uid, assignee_email)
    except DueDeskError as e:
        _fail(e)

    _emit(result, as_json, f"Reassigned {result['updatedCount']} task(s) to {assignee_email}")


@main.command()
@click.argument("occurrence_id")
@click.option("--filename", required=True)
@click.option("--file-id", required=True)
@click.option("--link", default="", help="View link")
@click.option("--kind", default="FILE")
@token_option
@json_option
@click.pass_obj
def attach(config: Config, occurrence_id: str, filename: str, file_id: str, link: str, kind: str, token: str, as_json: bool):
    """Record an uploaded file on a task."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        result = service.add_attachment(actor, occurrence_id, filename, file_id, link, kind)
    except DueDeskError as e:
        _fail(e)

    _emit(result, as_json, f"Attached {filename} ({result['attachmentCount']} total)")


@main.command("client-update")
@click.argument("client_id")
@click.option("--name", default=None)
@click.option("--email", default=None, help="Primary email")
@click.option("--cc", default=None, help="CC addresses separated by ; , or :")
@click.option("--bcc", default=None)
@token_option
@json_option
@click.pass_obj
def client_update(config: Config, client_id: str, name, email, cc, bcc, token: str, as_json: bool):
    """Update a client's name and default recipients."""
    try:
        service = build_service(config)
        actor = resolve_actor(service, token)
        client = service.update_client(actor, client_id, name, email, cc, bcc)
    except DueDeskError as e:
        _fail(e)

    _emit({"id": client.id, **client.to_record()}, as_json, f"Updated client {client.name}")


@main.command("list")
@click.option("--from", "start", default=None, help="DD-MM-YYYY")
@click.option("--to", "end", default=None, help="DD-MM-YYYY")
@click.option("--all", "include_completed", is_flag=True, help="Include completed tasks")
@json_option
@click.pass_obj
def list_tasks(config: Config, start: str | None, end: str | None, include_completed: bool, as_json: bool):
    """List tasks by due date."""
    try:
        service = build_service(config)
        occurrences = service.list_occurrences(_optional_date(start), _optional_date(end), include_completed)
    except DueDeskError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps([occurrence_summary(o) for o in occurrences], indent=2))
        return
    if not occurrences:
        click.echo("No tasks.")
        return
    for occ in occurrences:
        index = f" [{occ.occurrence_index}/{occ.occurrence_total}]" if occ.series_id else ""
        click.echo(f"{to_display(occ.due_date)}  {occ.status.value:16} {occ.title}{index} - {occ.client_name}")


def _reconcile(config: Config, run_date: str | None, force: bool, as_json: bool, daily: bool) -> None:
    try:
        today = _optional_date(run_date)
        reconciler = Reconciler(build_service(config))
    except DueDeskError as e:
        _fail(e)

    if daily:
        result = reconciler.run_daily_reconciliation(today, force)
    else:
        result = reconciler.run_client_start(today, force)

    data = result.to_dict()
    if result.skipped:
        message = f"Already ran for {to_display(result.today)}; use --force to run again."
    else:
        message = (
            f"Sent {result.sent_count}; skipped {result.skipped_no_template} no template, "
            f"{result.skipped_no_client} no client, {result.skipped_no_recipient} no recipient; "
            f"{result.failed_count} failed"
        )
        if result.ran_digest:
            message += f"; digest mails {result.digest_sent}"
    _emit(data, as_json, message)


@main.command("run-daily")
@click.option("--date", "run_date", default=None, help="Civil date to run for, DD-MM-YYYY")
@click.option("--force", is_flag=True, help="Run even if already run today")
@json_option
@click.pass_obj
def run_daily(config: Config, run_date: str | None, force: bool, as_json: bool):
    """Run the daily reconciliation (start mails and digest)."""
    _reconcile(config, run_date, force, as_json, daily=True)


@main.command("run-client-start")
@click.option("--date", "run_date", default=None, help="Civil date to run for, DD-MM-YYYY")
@click.option("--force", is_flag=True, help="Run even if already run today")
@json_option
@click.pass_obj
def run_client_start(config: Config, run_date: str | None, force: bool, as_json: bool):
    """Run the client start-mail pass only."""
    _reconcile(config, run_date, force, as_json, daily=False)


@main.command()
@click.pass_obj
def schedule(config: Config):
    """Run the reconciliation jobs on their daily schedule."""
    scheduler = setup_scheduler(Reconciler(build_service(config)), config)
    logger.info("Scheduler started")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


@main.command("cal-auth")
@click.pass_obj
def cal_auth(config: Config):
    """Authorize Google Calendar and Gmail access."""
    if authenticate(config.google_client_secret_file, config.token_path):
        click.echo(f"Authorized. Token saved to {config.token_path}")
    else:
        click.echo("Error: authorization failed (check GOOGLE_CLIENT_SECRET_FILE)", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
