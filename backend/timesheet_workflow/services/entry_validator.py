"""
Time entry validation rules.

Everything here is pure: callers hand in the candidate entry and the entries
already on the timesheet, nothing is read from or written to the database.
Candidates and existing entries are duck-typed, anything exposing the
TimeEntry attribute names works (ORM rows, TimeEntryCreate schemas).
"""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence

from timesheet_workflow.constants.statuses import EntryType
from timesheet_workflow.constants.violation_reasons import ReasonCode, explain_reason
from timesheet_workflow.exceptions import ValidationError
from timesheet_workflow.schemas.entry import TimeEntryCreate

log = logging.getLogger(__name__)

DEFAULT_MAX_DAILY_HOURS = Decimal("10")
# Matches the Numeric(5, 2) hours column
HOURS_STEP = Decimal("0.01")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def format_hours(value) -> str:
    """Render hours without trailing zeros or exponent ("8", "7.5", "10")."""
    return format(_as_decimal(value).normalize(), "f")


def _entry_type(entry) -> str:
    entry_type = getattr(entry, "entry_type", None) or EntryType.PROJECT_TASK.value
    return entry_type.value if isinstance(entry_type, EntryType) else entry_type


def _fail(code: ReasonCode, **context) -> ValidationError:
    return ValidationError(explain_reason(code, context), code)


def is_weekend(entry_date: date) -> bool:
    return entry_date.weekday() >= 5


def find_duplicate(candidate, same_day: Iterable) -> Optional[ReasonCode]:
    """Return the duplicate reason if the candidate collides with an entry on the same day."""
    candidate_type = _entry_type(candidate)
    for other in same_day:
        if _entry_type(other) != candidate_type:
            continue
        if candidate_type == EntryType.PROJECT_TASK.value:
            if other.project_id == candidate.project_id and other.task_id == candidate.task_id:
                return ReasonCode.DUPLICATE_PROJECT_TASK
        elif other.custom_task_description == candidate.custom_task_description:
            return ReasonCode.DUPLICATE_CUSTOM_TASK
    return None


def validate_entry(
    candidate: TimeEntryCreate,
    existing_entries: Sequence = (),
    week_start: Optional[date] = None,
    week_end: Optional[date] = None,
    max_daily_hours=DEFAULT_MAX_DAILY_HOURS,
    max_weekly_hours=None,
) -> TimeEntryCreate:
    """
    Validate one candidate against the timesheet's existing entries.

    Hours are rounded to the stored precision (0.01) before any rule runs,
    so the checks see the value that will be persisted.

    Rules run in a fixed order and the first failure wins: positive hours,
    entry shape, date inside the week, duplicate project/task, duplicate
    custom task, daily ceiling, optional weekly ceiling. Weekend dates never
    fail, they come back with is_billable forced to False.

    Args:
        candidate: Entry to validate
        existing_entries: Non-deleted entries already on the timesheet (any date)
        week_start: Monday of the timesheet week, skips the range check when None
        week_end: Sunday of the timesheet week
        max_daily_hours: Ceiling for the sum of hours on one date
        max_weekly_hours: Optional ceiling for the whole week

    Returns:
        The normalized candidate

    Raises:
        ValidationError: with a reason code describing the violated rule
    """
    try:
        hours = _as_decimal(candidate.hours).quantize(HOURS_STEP, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise _fail(ReasonCode.INVALID_INPUT, field="hours", detail=str(candidate.hours))
    if hours <= 0:
        raise _fail(ReasonCode.NON_POSITIVE_HOURS)
    if hours != candidate.hours:
        candidate = candidate.model_copy(update={"hours": hours})

    entry_type = _entry_type(candidate)
    if entry_type == EntryType.PROJECT_TASK.value:
        if candidate.project_id is None or candidate.task_id is None:
            raise _fail(ReasonCode.MISSING_PROJECT_OR_TASK)
    elif not (candidate.custom_task_description or "").strip():
        raise _fail(ReasonCode.MISSING_CUSTOM_DESCRIPTION)

    if week_start is not None and week_end is not None:
        if not (week_start <= candidate.date <= week_end):
            raise _fail(
                ReasonCode.DATE_OUTSIDE_WEEK,
                entry_date=candidate.date.isoformat(),
                week_start=week_start.isoformat(),
                week_end=week_end.isoformat(),
            )

    same_day = [e for e in existing_entries if e.date == candidate.date]

    duplicate = find_duplicate(candidate, same_day)
    if duplicate is not None:
        raise _fail(duplicate)

    limit = _as_decimal(max_daily_hours)
    current = sum((_as_decimal(e.hours) for e in same_day), Decimal("0"))
    total = current + hours
    if total > limit:
        raise _fail(
            ReasonCode.DAILY_LIMIT_EXCEEDED,
            entry_date=candidate.date.isoformat(),
            limit=format_hours(limit),
            current=format_hours(current),
            adding=format_hours(hours),
            total=format_hours(total),
        )

    if max_weekly_hours is not None:
        weekly_limit = _as_decimal(max_weekly_hours)
        week_current = sum((_as_decimal(e.hours) for e in existing_entries), Decimal("0"))
        if week_current + hours > weekly_limit:
            raise _fail(
                ReasonCode.WEEKLY_LIMIT_EXCEEDED,
                limit=format_hours(weekly_limit),
                current=format_hours(week_current),
                adding=format_hours(hours),
                total=format_hours(week_current + hours),
            )

    if is_weekend(candidate.date) and candidate.is_billable:
        log.debug(f"Entry on {candidate.date} falls on a weekend, marking non-billable")
        return candidate.model_copy(update={"is_billable": False})
    return candidate


def validate_batch(
    candidates: Sequence[TimeEntryCreate],
    existing_entries: Sequence = (),
    week_start: Optional[date] = None,
    week_end: Optional[date] = None,
    max_daily_hours=DEFAULT_MAX_DAILY_HOURS,
    max_weekly_hours=None,
) -> List[TimeEntryCreate]:
    """
    Validate a whole batch before anything is persisted.

    Each candidate is checked against the existing entries plus the batch
    entries accepted before it, so duplicates and ceilings are enforced
    inside the batch as well. Pass no existing entries for replace-all.
    """
    accepted: List = list(existing_entries)
    normalized: List[TimeEntryCreate] = []
    for index, candidate in enumerate(candidates):
        try:
            entry = validate_entry(
                candidate,
                accepted,
                week_start=week_start,
                week_end=week_end,
                max_daily_hours=max_daily_hours,
                max_weekly_hours=max_weekly_hours,
            )
        except ValidationError as e:
            if len(candidates) == 1:
                raise
            log.info(f"Batch entry {index + 1} rejected: {e.message}")
            raise ValidationError(f"Entry {index + 1}: {e.message}", e.reason_code) from e
        accepted.append(entry)
        normalized.append(entry)
    return normalized
