"""Time entry mutations on a timesheet: add, update, delete, replace-all."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from timesheet_workflow.config import settings
from timesheet_workflow.constants.statuses import EDITABLE_STATUSES, EntryType, is_editable
from timesheet_workflow.constants.violation_reasons import ReasonCode, explain_reason
from timesheet_workflow.exceptions import NotFoundError, TimesheetError, ValidationError
from timesheet_workflow.models.project import Project, Task
from timesheet_workflow.models.time_entry import TimeEntry
from timesheet_workflow.models.timesheet import Timesheet
from timesheet_workflow.models.user import User
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.schemas.entry import TimeEntryCreate, TimeEntryUpdate
from timesheet_workflow.services.audit import AuditRecorder, OperationOutcome, audited, snapshot, to_json_safe
from timesheet_workflow.services.entry_validator import validate_batch, validate_entry
from timesheet_workflow.services.permissions import Action, check_permission

log = logging.getLogger(__name__)

ENTRY_ENTITY = "time_entries"


def manages(actor: Actor, owner: Optional[User]) -> bool:
    return owner is not None and owner.manager_id == actor.id


class EntryManager:
    """
    Applies entry mutations to editable timesheets.

    Every mutation validates first, persists, recomputes the timesheet's
    total hours from the stored entries and appends one audit record per
    batch (replace-all appends a deletion and an insertion record).
    """

    def __init__(
        self,
        db: Session,
        audit: AuditRecorder,
        max_daily_hours=None,
        max_weekly_hours=None,
    ):
        self.db = db
        self.audit = audit
        self.max_daily_hours = max_daily_hours if max_daily_hours is not None else settings.max_daily_hours
        self.max_weekly_hours = max_weekly_hours if max_weekly_hours is not None else settings.max_weekly_hours

    def _load_timesheet(self, timesheet_id: int) -> Timesheet:
        timesheet = self.db.get(Timesheet, timesheet_id)
        if timesheet is None or timesheet.deleted_at is not None:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Timesheet"}), ReasonCode.NOT_FOUND)
        return timesheet

    def _active_entries(self, timesheet_id: int, exclude_id: Optional[int] = None) -> List[TimeEntry]:
        query = self.db.query(TimeEntry).filter(
            TimeEntry.timesheet_id == timesheet_id,
            TimeEntry.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.filter(TimeEntry.id != exclude_id)
        return query.order_by(TimeEntry.date, TimeEntry.id).all()

    def _load_editable(self, actor: Actor, timesheet_id: int) -> Timesheet:
        timesheet = self._load_timesheet(timesheet_id)
        owner = self.db.get(User, timesheet.user_id)
        check_permission(
            actor,
            Action.EDIT_ENTRIES,
            is_owner=timesheet.user_id == actor.id,
            manages_owner=manages(actor, owner),
        )
        if not is_editable(timesheet.status, timesheet.is_frozen):
            raise TimesheetError(
                f"Cannot modify entries of timesheet in current status: {timesheet.status}",
                ReasonCode.INVALID_STATUS,
            )
        return timesheet

    def _check_references(self, entries: Sequence[TimeEntryCreate]) -> None:
        for entry in entries:
            if entry.entry_type != EntryType.PROJECT_TASK:
                continue
            project = self.db.get(Project, entry.project_id)
            if project is None or project.deleted_at is not None or not project.is_active:
                raise ValidationError(f"Project {entry.project_id} not found or inactive", ReasonCode.MISSING_PROJECT_OR_TASK)
            task = self.db.get(Task, entry.task_id)
            if task is None or not task.is_active or task.project_id != entry.project_id:
                raise ValidationError(
                    f"Task {entry.task_id} not found in project {entry.project_id}",
                    ReasonCode.MISSING_PROJECT_OR_TASK,
                )

    def _validate(self, timesheet: Timesheet, candidates: Sequence[TimeEntryCreate], existing: Sequence) -> List[TimeEntryCreate]:
        normalized = validate_batch(
            candidates,
            existing,
            week_start=timesheet.week_start_date,
            week_end=timesheet.week_end_date,
            max_daily_hours=self.max_daily_hours,
            max_weekly_hours=self.max_weekly_hours,
        )
        self._check_references(normalized)
        return normalized

    @staticmethod
    def _to_model(timesheet_id: int, entry: TimeEntryCreate) -> TimeEntry:
        data = entry.model_dump()
        data["entry_type"] = EntryType(data["entry_type"]).value
        if data["entry_type"] == EntryType.CUSTOM_TASK.value:
            data["project_id"] = None
            data["task_id"] = None
        else:
            data["custom_task_description"] = None
        return TimeEntry(timesheet_id=timesheet_id, **data)

    def _sum_hours(self, timesheet_id: int) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(TimeEntry.hours), 0))
            .filter(TimeEntry.timesheet_id == timesheet_id, TimeEntry.deleted_at.is_(None))
            .scalar()
        )
        return Decimal(str(total))

    def _commit_if_editable(self, timesheet_id: int) -> Decimal:
        """
        Store the new total and commit the pending entry changes, but only
        while the timesheet is still editable.

        The total is written with a conditional UPDATE in the same
        transaction as the entry rows. When a submit or approval committed
        in between, nothing matches, the entry changes are rolled back and
        TimesheetError reports the status that was found.
        """
        self.db.flush()
        total = self._sum_hours(timesheet_id)
        updated = (
            self.db.query(Timesheet)
            .filter(
                Timesheet.id == timesheet_id,
                Timesheet.status.in_([s.value for s in EDITABLE_STATUSES]),
                Timesheet.is_frozen.is_(False),
                Timesheet.deleted_at.is_(None),
            )
            .update({"total_hours": total}, synchronize_session=False)
        )
        if updated == 0:
            self.db.rollback()
            timesheet = self.db.get(Timesheet, timesheet_id)
            current = timesheet.status if timesheet is not None else "missing"
            log.warning(f"Entry change on timesheet {timesheet_id} discarded, status changed to {current}")
            raise TimesheetError(
                f"Cannot modify entries of timesheet in current status: {current}",
                ReasonCode.INVALID_STATUS,
            )
        self.db.commit()
        log.debug(f"Timesheet {timesheet_id} total hours recomputed: {total}")
        return total

    def recompute_total_hours(self, timesheet_id: int) -> Decimal:
        """Set total_hours to the sum of the non-deleted entries. Safe to repeat."""
        total = self._sum_hours(timesheet_id)
        self.db.query(Timesheet).filter(Timesheet.id == timesheet_id).update(
            {"total_hours": total}, synchronize_session=False
        )
        self.db.commit()
        log.debug(f"Timesheet {timesheet_id} total hours recomputed: {total}")
        return total

    def _entries_snapshot(self, timesheet_id: int) -> dict:
        timesheet = self.db.get(Timesheet, timesheet_id)
        return {
            "total_hours": to_json_safe(timesheet.total_hours) if timesheet else None,
            "entries": [snapshot(row) for row in self._active_entries(timesheet_id)],
        }

    # Callers validate and check permissions first; these only persist.

    @audited(ENTRY_ENTITY, "add_entries", lambda self, timesheet_id: self._entries_snapshot(timesheet_id))
    def _insert(self, actor: Actor, timesheet_id: int, normalized: Sequence[TimeEntryCreate], reason: str = "add") -> OperationOutcome:
        created = [self._to_model(timesheet_id, entry) for entry in normalized]
        self.db.add_all(created)
        total = self._commit_if_editable(timesheet_id)
        for row in created:
            self.db.refresh(row)
        log.info(f"Added {len(created)} entries to timesheet {timesheet_id} (total hours: {total})")
        return OperationOutcome(
            created,
            timesheet_id,
            context={"count": len(created), "entry_ids": [row.id for row in created], "reason": reason},
            side_effects={"total_hours": total},
        )

    @audited(ENTRY_ENTITY, "delete_entries", lambda self, timesheet_id: self._entries_snapshot(timesheet_id))
    def _soft_delete(self, actor: Actor, timesheet_id: int, rows: Sequence[TimeEntry], reason: str = "delete") -> OperationOutcome:
        now = datetime.now(timezone.utc)
        entry_ids = [row.id for row in rows]
        for row in rows:
            row.deleted_at = now
        total = self._commit_if_editable(timesheet_id)
        log.info(f"Removed {len(entry_ids)} entries from timesheet {timesheet_id} (total hours: {total})")
        return OperationOutcome(
            entry_ids,
            timesheet_id,
            context={"count": len(entry_ids), "entry_ids": entry_ids, "reason": reason},
            side_effects={"total_hours": total},
        )

    @audited(ENTRY_ENTITY, "update_entry", lambda self, timesheet_id: self._entries_snapshot(timesheet_id))
    def _apply_update(self, actor: Actor, timesheet_id: int, entry: TimeEntry, normalized: TimeEntryCreate) -> OperationOutcome:
        replacement = self._to_model(timesheet_id, normalized)
        for column in ("entry_type", "project_id", "task_id", "custom_task_description", "date", "hours", "is_billable", "description"):
            setattr(entry, column, getattr(replacement, column))
        total = self._commit_if_editable(timesheet_id)
        self.db.refresh(entry)
        return OperationOutcome(
            entry,
            timesheet_id,
            context={"count": 1, "entry_ids": [entry.id]},
            side_effects={"total_hours": total},
        )

    def list_entries(self, actor: Actor, timesheet_id: int) -> List[TimeEntry]:
        timesheet = self._load_timesheet(timesheet_id)
        owner = self.db.get(User, timesheet.user_id)
        check_permission(actor, Action.VIEW, is_owner=timesheet.user_id == actor.id, manages_owner=manages(actor, owner))
        return self._active_entries(timesheet_id)

    def add_entry(self, actor: Actor, timesheet_id: int, entry: TimeEntryCreate) -> TimeEntry:
        return self.add_entries(actor, timesheet_id, [entry])[0]

    def add_entries(self, actor: Actor, timesheet_id: int, entries: Sequence[TimeEntryCreate]) -> List[TimeEntry]:
        """Append entries, validated together with what the timesheet already holds."""
        if not entries:
            raise ValidationError("At least one entry is required")
        timesheet = self._load_editable(actor, timesheet_id)
        normalized = self._validate(timesheet, entries, self._active_entries(timesheet_id))
        return self._insert(actor, timesheet_id, normalized).result

    def replace_entries(self, actor: Actor, timesheet_id: int, entries: Sequence[TimeEntryCreate]) -> List[TimeEntry]:
        """
        Replace every entry on the timesheet with the given set.

        The new set is validated on its own before anything changes, so a
        rejected batch leaves the existing entries untouched. An empty list
        clears the timesheet.
        """
        timesheet = self._load_editable(actor, timesheet_id)
        normalized = self._validate(timesheet, entries, ())

        previous = self._active_entries(timesheet_id)
        if previous:
            self._soft_delete(actor, timesheet_id, previous, reason="replace_all")
        if not normalized:
            return []
        return self._insert(actor, timesheet_id, normalized, reason="replace_all").result

    def _load_entry(self, timesheet_id: int, entry_id: int) -> TimeEntry:
        entry = (
            self.db.query(TimeEntry)
            .filter(
                TimeEntry.id == entry_id,
                TimeEntry.timesheet_id == timesheet_id,
                TimeEntry.deleted_at.is_(None),
            )
            .first()
        )
        if entry is None:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Time entry"}), ReasonCode.NOT_FOUND)
        return entry

    def update_entry(self, actor: Actor, timesheet_id: int, entry_id: int, changes: TimeEntryUpdate) -> TimeEntry:
        """Apply a partial update; the result is validated against the other entries."""
        timesheet = self._load_editable(actor, timesheet_id)
        entry = self._load_entry(timesheet_id, entry_id)

        current = TimeEntryCreate.model_validate(entry, from_attributes=True).model_dump()
        current.update(changes.model_dump(exclude_unset=True))
        try:
            merged = TimeEntryCreate.model_validate(current)
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "entry"
            raise ValidationError(
                explain_reason(ReasonCode.INVALID_INPUT, {"field": field, "detail": error["msg"]}),
                ReasonCode.INVALID_INPUT,
            )

        normalized = validate_entry(
            merged,
            self._active_entries(timesheet_id, exclude_id=entry_id),
            week_start=timesheet.week_start_date,
            week_end=timesheet.week_end_date,
            max_daily_hours=self.max_daily_hours,
            max_weekly_hours=self.max_weekly_hours,
        )
        self._check_references([normalized])
        return self._apply_update(actor, timesheet_id, entry, normalized).result

    def delete_entry(self, actor: Actor, timesheet_id: int, entry_id: int) -> None:
        self._load_editable(actor, timesheet_id)
        entry = self._load_entry(timesheet_id, entry_id)
        self._soft_delete(actor, timesheet_id, [entry])
