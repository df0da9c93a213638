"""Pure series expansion - plans occurrences, performs no I/O."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from .dates import Recurrence, advance, start_date_for
from .tasks import Occurrence, TaskTemplate


@dataclass
class AppendPlan:
    """Occurrences to add to an existing series."""

    base_due: date
    created: list[Occurrence] = field(default_factory=list)
    new_total: int = 0


def _build(
    template: TaskTemplate,
    occurrence_id: str,
    due: date,
    series_id: str | None,
    index: int,
    total: int,
    now: datetime | None,
) -> Occurrence:
    return Occurrence(
        id=occurrence_id,
        title=template.title,
        client_id=template.client_id,
        client_name=template.client_name,
        category=template.category,
        type=template.type,
        priority=template.priority,
        recurrence=template.recurrence,
        series_id=series_id,
        occurrence_index=index,
        occurrence_total=total,
        due_date=due,
        start_date=start_date_for(due, template.trigger_days_before),
        trigger_days_before=template.trigger_days_before,
        assignee_uid=template.assignee_uid,
        assignee_email=template.assignee_email,
        calendar_description=template.calendar_description.strip(),
        start_mail=template.start_mail.config_only(),
        completion_mail=template.completion_mail.config_only(),
        created_by=template.created_by,
        created_at=now,
        updated_at=now,
    )


def effective_count(recurrence: Recurrence, count: int) -> int:
    """Ad-hoc templates never expand to more than one occurrence."""
    if recurrence is Recurrence.AD_HOC:
        return 1
    return max(1, int(count))


def expand_series(
    template: TaskTemplate,
    base_due: date,
    count: int,
    make_id: Callable[[], str],
    make_series_id: Callable[[], str],
    now: datetime | None = None,
) -> list[Occurrence]:
    """
    Expand a template into its occurrences.

    Occurrence i (0-based) is due at advance(base_due, unit, i). A series id
    is allocated only for a real multi-occurrence recurrence.
    """
    n = effective_count(template.recurrence, count)
    series_id = make_series_id() if n > 1 else None
    return [
        _build(
            template,
            make_id(),
            advance(base_due, template.recurrence, i),
            series_id,
            i + 1,
            n,
            now,
        )
        for i in range(n)
    ]


def series_anchor(existing: list[Occurrence]) -> Occurrence:
    """Occurrence #1 of a series, else the one with the earliest due date."""
    for occ in existing:
        if occ.occurrence_index == 1:
            return occ
    return min(existing, key=lambda o: o.due_date)


def max_index(existing: list[Occurrence]) -> int:
    indices = [o.occurrence_index for o in existing if o.occurrence_index]
    if not indices:
        return len(existing)
    return max(indices)


def append_to_series(
    existing: list[Occurrence],
    template: TaskTemplate,
    add_count: int,
    make_id: Callable[[], str],
    now: datetime | None = None,
) -> AppendPlan:
    """
    Plan `add_count` more occurrences after the highest existing index.

    Due dates are computed from occurrence #1's due date, not from the
    smallest stored due date, since occurrences may have been edited one by
    one. Indices already present are skipped.
    """
    if not existing:
        raise ValueError("append_to_series needs at least one existing occurrence")

    anchor = series_anchor(existing)
    base_due = anchor.due_date
    series_id = anchor.series_id
    top = max_index(existing)
    occupied = {o.occurrence_index for o in existing if o.occurrence_index}
    n = max(1, int(add_count))
    new_total = top + n

    plan = AppendPlan(base_due=base_due, new_total=new_total)
    for idx in range(top + 1, top + n + 1):
        if idx in occupied:
            continue
        due = advance(base_due, template.recurrence, idx - 1)
        plan.created.append(
            _build(template, make_id(), due, series_id, idx, new_total, now)
        )
    return plan


def template_from_occurrence(occ: Occurrence) -> TaskTemplate:
    """Recover the template shape of an existing occurrence."""
    return TaskTemplate(
        title=occ.title,
        client_id=occ.client_id,
        client_name=occ.client_name,
        category=occ.category,
        type=occ.type,
        priority=occ.priority,
        recurrence=occ.recurrence,
        occurrence_count=occ.occurrence_total or 1,
        trigger_days_before=occ.trigger_days_before,
        assignee_uid=occ.assignee_uid,
        assignee_email=occ.assignee_email,
        start_mail=occ.start_mail.config_only(),
        completion_mail=occ.completion_mail.config_only(),
        calendar_description=occ.calendar_description,
        created_by=occ.created_by,
    )
