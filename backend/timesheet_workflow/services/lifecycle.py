"""
Timesheet lifecycle state machine.

Owns the status column. Every transition is a compare-and-swap: the UPDATE
only matches while the row still has the status the decision was based on,
so of two concurrent writers exactly one wins and the other gets a
TimesheetError naming the status it actually found.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timesheet_workflow.constants.statuses import (
    EDITABLE_STATUSES,
    Role,
    TimesheetStatus,
)
from timesheet_workflow.constants.violation_reasons import ReasonCode, explain_reason
from timesheet_workflow.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TimesheetError,
    ValidationError,
)
from timesheet_workflow.models.project_approval import TimesheetProjectApproval
from timesheet_workflow.models.time_entry import TimeEntry
from timesheet_workflow.models.timesheet import Timesheet
from timesheet_workflow.models.user import User
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.services.audit import AuditRecorder, OperationOutcome, audited, snapshot
from timesheet_workflow.services.notifications import NotificationDispatcher, SubmissionEvent
from timesheet_workflow.services.permissions import Action, check_permission
from timesheet_workflow.services.project_approval import ProjectApprovalFanout

log = logging.getLogger(__name__)

S = TimesheetStatus

TRANSITIONS: Dict[TimesheetStatus, FrozenSet[TimesheetStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.MANAGEMENT_PENDING}),
    S.MANAGER_REJECTED: frozenset({S.SUBMITTED, S.MANAGEMENT_PENDING}),
    S.MANAGEMENT_REJECTED: frozenset({S.SUBMITTED, S.MANAGEMENT_PENDING}),
    S.SUBMITTED: frozenset({S.MANAGER_APPROVED, S.MANAGER_REJECTED}),
    S.MANAGER_APPROVED: frozenset({S.FROZEN, S.MANAGEMENT_REJECTED}),
    S.MANAGEMENT_PENDING: frozenset({S.FROZEN, S.MANAGEMENT_REJECTED}),
    S.FROZEN: frozenset({S.BILLED}),
    S.BILLED: frozenset(),
}

# Owners at or above this role skip the manager tier on submission
MANAGER_LEVEL = Role.MANAGER.level

TIMESHEET_ENTITY = "timesheet"


def transition_allowed(current, target) -> bool:
    return S(target) in TRANSITIONS.get(S(current), frozenset())


def normalize_week_start(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


def list_blocking_dependencies(timesheet: Timesheet) -> List[str]:
    """
    Reasons the timesheet may not be deleted, empty when deletion is allowed.

    Pure: looks only at the timesheet's own fields.
    """
    reasons = []
    if timesheet.billing_snapshot_id is not None:
        reasons.append(f"linked to billing snapshot {timesheet.billing_snapshot_id}")
    if timesheet.status == S.BILLED.value or timesheet.billed_at is not None:
        reasons.append("timesheet has been billed")
    if timesheet.is_frozen or timesheet.status == S.FROZEN.value:
        reasons.append("timesheet is frozen for billing")
    return reasons


def _capture(lifecycle: "TimesheetLifecycle", timesheet_id: int):
    return snapshot(lifecycle.db.get(Timesheet, timesheet_id))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TimesheetLifecycle:
    """Creates timesheets and moves them through the approval pipeline."""

    def __init__(
        self,
        db: Session,
        audit: AuditRecorder,
        fanout: ProjectApprovalFanout,
        notifier: NotificationDispatcher,
    ):
        self.db = db
        self.audit = audit
        self.fanout = fanout
        self.notifier = notifier

    def _load(self, timesheet_id: int, include_deleted: bool = False) -> Timesheet:
        timesheet = self.db.get(Timesheet, timesheet_id)
        if timesheet is None or timesheet.is_hard_deleted:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Timesheet"}), ReasonCode.NOT_FOUND)
        if timesheet.deleted_at is not None and not include_deleted:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Timesheet"}), ReasonCode.NOT_FOUND)
        return timesheet

    def _owner(self, timesheet: Timesheet) -> Optional[User]:
        return self.db.get(User, timesheet.user_id)

    def _invalid_status(self, verb: str, status: str) -> TimesheetError:
        return TimesheetError(
            explain_reason(ReasonCode.INVALID_STATUS, {"verb": verb, "status": status}),
            ReasonCode.INVALID_STATUS,
        )

    def _require_status(self, timesheet: Timesheet, allowed: Set[TimesheetStatus], verb: str) -> TimesheetStatus:
        current = S(timesheet.status)
        if current not in allowed:
            raise self._invalid_status(verb, current.value)
        return current

    def _compare_and_swap(self, timesheet: Timesheet, expected: TimesheetStatus, target: TimesheetStatus, verb: str, **values) -> Timesheet:
        """
        Conditionally move `timesheet` from `expected` to `target`.

        Raises TimesheetError with the observed status when another writer
        got there first.
        """
        if not transition_allowed(expected, target):
            raise self._invalid_status(verb, expected.value)
        values["status"] = target.value
        updated = (
            self.db.query(Timesheet)
            .filter(Timesheet.id == timesheet.id, Timesheet.status == expected.value)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(timesheet)
        if updated == 0:
            log.warning(
                f"Lost status race on timesheet {timesheet.id}: expected {expected.value}, found {timesheet.status}"
            )
            raise self._invalid_status(verb, timesheet.status)
        log.info(f"Timesheet {timesheet.id}: {expected.value} -> {target.value}")
        return timesheet

    def _live_for_week(self, user_id: int, week_start: date, exclude_id: Optional[int] = None) -> Optional[Timesheet]:
        query = self.db.query(Timesheet).filter(
            Timesheet.user_id == user_id,
            Timesheet.week_start_date == week_start,
            Timesheet.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.filter(Timesheet.id != exclude_id)
        return query.first()

    @staticmethod
    def _week_taken(week_start: date, status: str) -> ConflictError:
        return ConflictError(
            explain_reason(ReasonCode.WEEK_TAKEN, {"week_start": week_start.isoformat(), "status": status}),
            ReasonCode.WEEK_TAKEN,
        )

    def _forbid_self_decision(self, actor: Actor, timesheet: Timesheet) -> None:
        if timesheet.user_id == actor.id:
            log.info(f"User {actor.id} attempted to decide on their own timesheet {timesheet.id}")
            raise AuthorizationError(explain_reason(ReasonCode.SELF_APPROVAL, {}), ReasonCode.SELF_APPROVAL)

    @staticmethod
    def _require_reason(reason: Optional[str]) -> str:
        if not (reason or "").strip():
            raise ValidationError(explain_reason(ReasonCode.REASON_REQUIRED, {}), ReasonCode.REASON_REQUIRED)
        return reason.strip()

    def _recipients(self, timesheet: Timesheet, owner: Optional[User], target: TimesheetStatus) -> List[int]:
        recipients = []
        if target == S.MANAGEMENT_PENDING:
            recipients.extend(
                user_id
                for (user_id,) in self.db.query(User.id)
                .filter(User.role == Role.MANAGEMENT.value, User.is_active.is_(True))
                .order_by(User.id)
                .all()
            )
        else:
            if owner is not None and owner.manager_id:
                recipients.append(owner.manager_id)
            for approval in self.fanout.list_approvals(timesheet.id):
                recipients.extend(uid for uid in (approval.lead_id, approval.manager_id) if uid)
        unique = []
        for uid in recipients:
            if uid != timesheet.user_id and uid not in unique:
                unique.append(uid)
        return unique

    @audited(TIMESHEET_ENTITY, "create", _capture)
    def create(self, actor: Actor, week_start_date: date, user_id: Optional[int] = None) -> OperationOutcome:
        """
        Create a draft timesheet for (user, week).

        The week start is normalized to its Monday. Raises ConflictError when
        the user already has a live timesheet for that week.
        """
        owner_id = user_id if user_id is not None else actor.id
        owner = self.db.get(User, owner_id)
        if owner is None:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "User"}), ReasonCode.NOT_FOUND)
        check_permission(
            actor,
            Action.CREATE,
            is_owner=owner_id == actor.id,
            manages_owner=owner.manager_id == actor.id,
        )

        week_start = normalize_week_start(week_start_date)
        existing = self._live_for_week(owner_id, week_start)
        if existing is not None:
            raise self._week_taken(week_start, existing.status)

        timesheet = Timesheet(
            user_id=owner_id,
            week_start_date=week_start,
            week_end_date=week_start + timedelta(days=6),
            total_hours=Decimal("0"),
            status=S.DRAFT.value,
        )
        self.db.add(timesheet)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent create won the unique (user, week) index
            self.db.rollback()
            existing = self._live_for_week(owner_id, week_start)
            log.warning(f"Concurrent create for user {owner_id}, week {week_start} rejected")
            raise self._week_taken(week_start, existing.status if existing else "unknown")
        self.db.refresh(timesheet)
        log.info(f"Created timesheet {timesheet.id} for user {owner_id}, week {week_start}")
        return OperationOutcome(
            timesheet,
            timesheet.id,
            context={"user_id": owner_id, "week_start_date": week_start, "created_for_other": owner_id != actor.id},
        )

    @audited(TIMESHEET_ENTITY, "submit", _capture)
    def submit(self, actor: Actor, timesheet_id: int) -> OperationOutcome:
        """
        Submit for review.

        Owners with a manager-level role go straight to management_pending,
        everybody else to submitted. Project approval slices are created or
        refreshed and approvers are notified.
        """
        timesheet = self._load(timesheet_id)
        check_permission(actor, Action.SUBMIT, is_owner=timesheet.user_id == actor.id)
        current = self._require_status(timesheet, EDITABLE_STATUSES, "submitted")
        if timesheet.is_frozen:
            raise self._invalid_status("submitted", timesheet.status)
        if Decimal(str(timesheet.total_hours or 0)) <= 0:
            raise TimesheetError(explain_reason(ReasonCode.ZERO_HOURS, {}), ReasonCode.ZERO_HOURS)

        owner = self._owner(timesheet)
        owner_level = Role(owner.role).level if owner is not None else Role.EMPLOYEE.level
        target = S.MANAGEMENT_PENDING if owner_level >= MANAGER_LEVEL else S.SUBMITTED

        self._compare_and_swap(timesheet, current, target, "submitted", submitted_at=_now())
        fanout = self.fanout.ensure_approvals(timesheet, reset_decisions=True)

        event = SubmissionEvent(
            recipient_ids=self._recipients(timesheet, owner, target),
            timesheet_id=timesheet.id,
            submitted_by=timesheet.user_id,
            week_start_date=timesheet.week_start_date,
            total_hours=float(timesheet.total_hours),
            status=target.value,
        )
        self.notifier.dispatch(event)

        return OperationOutcome(
            timesheet,
            timesheet.id,
            context={"from_status": current.value, "to_status": target.value, "resubmission": current != S.DRAFT},
            side_effects={"project_approvals": fanout, "notified": event.recipient_ids},
        )

    @audited(TIMESHEET_ENTITY, "manager_decision", _capture)
    def manager_decision(self, actor: Actor, timesheet_id: int, approve: bool, reason: Optional[str] = None) -> OperationOutcome:
        """Approve (submitted -> manager_approved) or reject (-> manager_rejected, reason required)."""
        timesheet = self._load(timesheet_id)
        check_permission(actor, Action.MANAGER_DECISION)
        self._forbid_self_decision(actor, timesheet)
        verb = "processed"
        current = self._require_status(timesheet, {S.SUBMITTED}, verb)

        if approve:
            self._compare_and_swap(
                timesheet, current, S.MANAGER_APPROVED, verb,
                approved_by_manager_id=actor.id,
                manager_approved_at=_now(),
                manager_rejection_reason=None,
            )
        else:
            reason = self._require_reason(reason)
            self._compare_and_swap(
                timesheet, current, S.MANAGER_REJECTED, verb,
                manager_rejection_reason=reason,
                manager_rejected_at=_now(),
            )
        return OperationOutcome(
            timesheet,
            timesheet.id,
            context={"from_status": current.value, "to_status": timesheet.status, "reason": reason},
            action="manager_approve" if approve else "manager_reject",
        )

    @audited(TIMESHEET_ENTITY, "management_decision", _capture)
    def management_decision(self, actor: Actor, timesheet_id: int, approve: bool, reason: Optional[str] = None) -> OperationOutcome:
        """Approve (-> frozen, verified) or reject (-> management_rejected, reason required)."""
        timesheet = self._load(timesheet_id)
        check_permission(actor, Action.MANAGEMENT_DECISION)
        self._forbid_self_decision(actor, timesheet)
        verb = "processed"
        current = self._require_status(timesheet, {S.MANAGER_APPROVED, S.MANAGEMENT_PENDING}, verb)

        if approve:
            now = _now()
            self._compare_and_swap(
                timesheet, current, S.FROZEN, verb,
                approved_by_management_id=actor.id,
                management_approved_at=now,
                management_rejection_reason=None,
                verified_by_id=actor.id,
                verified_at=now,
                is_verified=True,
                is_frozen=True,
            )
        else:
            reason = self._require_reason(reason)
            self._compare_and_swap(
                timesheet, current, S.MANAGEMENT_REJECTED, verb,
                management_rejection_reason=reason,
                management_rejected_at=_now(),
            )
        return OperationOutcome(
            timesheet,
            timesheet.id,
            context={"from_status": current.value, "to_status": timesheet.status, "reason": reason},
            action="management_approve" if approve else "management_reject",
        )

    @audited(TIMESHEET_ENTITY, "mark_billed", _capture)
    def mark_billed(self, actor: Actor, timesheet_id: int, billing_snapshot_id: Optional[int] = None) -> OperationOutcome:
        """Billing hand-off: frozen -> billed."""
        timesheet = self._load(timesheet_id)
        check_permission(actor, Action.MARK_BILLED)
        current = self._require_status(timesheet, {S.FROZEN}, "billed")
        values = {"billed_at": _now()}
        if billing_snapshot_id is not None:
            values["billing_snapshot_id"] = billing_snapshot_id
        self._compare_and_swap(timesheet, current, S.BILLED, "billed", **values)
        return OperationOutcome(
            timesheet,
            timesheet.id,
            context={"billing_snapshot_id": billing_snapshot_id},
        )

    @audited(TIMESHEET_ENTITY, "soft_delete", _capture)
    def soft_delete(self, actor: Actor, timesheet_id: int, reason: Optional[str] = None) -> OperationOutcome:
        """
        Hide a timesheet. Owners may only delete their own drafts; management
        and super admins may delete anything without blocking dependencies.
        """
        timesheet = self._load(timesheet_id)
        is_owner = timesheet.user_id == actor.id
        check_permission(actor, Action.SOFT_DELETE, is_owner=is_owner)
        if is_owner and actor.role.level < Role.MANAGEMENT.level and timesheet.status != S.DRAFT.value:
            raise self._invalid_status("deleted", timesheet.status)

        blocking = list_blocking_dependencies(timesheet)
        if blocking:
            raise TimesheetError(
                explain_reason(ReasonCode.BLOCKED_BY_DEPENDENCIES, {"dependencies": "; ".join(blocking)}),
                ReasonCode.BLOCKED_BY_DEPENDENCIES,
            )

        observed = timesheet.status
        updated = (
            self.db.query(Timesheet)
            .filter(
                Timesheet.id == timesheet.id,
                Timesheet.deleted_at.is_(None),
                Timesheet.status == observed,
            )
            .update(
                {"deleted_at": _now(), "deleted_by": actor.id, "deleted_reason": reason},
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(timesheet)
        if updated == 0:
            if timesheet.deleted_at is not None:
                raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Timesheet"}), ReasonCode.NOT_FOUND)
            log.warning(f"Lost status race deleting timesheet {timesheet.id}: expected {observed}, found {timesheet.status}")
            raise self._invalid_status("deleted", timesheet.status)
        log.info(f"Timesheet {timesheet.id} soft-deleted by user {actor.id}")
        return OperationOutcome(timesheet, timesheet.id, context={"reason": reason})

    @audited(TIMESHEET_ENTITY, "restore", _capture)
    def restore(self, actor: Actor, timesheet_id: int) -> OperationOutcome:
        """Undo a soft delete, provided the week has not been taken since."""
        timesheet = self._load(timesheet_id, include_deleted=True)
        check_permission(actor, Action.RESTORE)
        if timesheet.deleted_at is None:
            raise TimesheetError("Timesheet is not deleted", ReasonCode.INVALID_STATUS)

        taken = self._live_for_week(timesheet.user_id, timesheet.week_start_date, exclude_id=timesheet.id)
        if taken is not None:
            raise self._week_taken(timesheet.week_start_date, taken.status)

        timesheet.deleted_at = None
        timesheet.deleted_by = None
        timesheet.deleted_reason = None
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            taken = self._live_for_week(timesheet.user_id, timesheet.week_start_date, exclude_id=timesheet.id)
            raise self._week_taken(timesheet.week_start_date, taken.status if taken else "unknown")
        self.db.refresh(timesheet)
        log.info(f"Timesheet {timesheet.id} restored by user {actor.id}")
        return OperationOutcome(timesheet, timesheet.id)

    @audited(TIMESHEET_ENTITY, "hard_delete", _capture)
    def hard_delete(self, actor: Actor, timesheet_id: int) -> OperationOutcome:
        """
        Permanently remove entries and approval slices of a soft-deleted
        timesheet. The row itself stays as a tombstone so the audit trail
        keeps resolving.
        """
        timesheet = self._load(timesheet_id, include_deleted=True)
        check_permission(actor, Action.HARD_DELETE)
        if timesheet.deleted_at is None:
            raise TimesheetError("Timesheet must be soft-deleted before it can be permanently deleted", ReasonCode.INVALID_STATUS)
        blocking = list_blocking_dependencies(timesheet)
        if blocking:
            raise TimesheetError(
                explain_reason(ReasonCode.BLOCKED_BY_DEPENDENCIES, {"dependencies": "; ".join(blocking)}),
                ReasonCode.BLOCKED_BY_DEPENDENCIES,
            )

        entries_removed = (
            self.db.query(TimeEntry)
            .filter(TimeEntry.timesheet_id == timesheet.id)
            .delete(synchronize_session=False)
        )
        approvals_removed = (
            self.db.query(TimesheetProjectApproval)
            .filter(TimesheetProjectApproval.timesheet_id == timesheet.id)
            .delete(synchronize_session=False)
        )
        timesheet.is_hard_deleted = True
        timesheet.hard_deleted_at = _now()
        timesheet.hard_deleted_by = actor.id
        timesheet.total_hours = Decimal("0")
        self.db.commit()
        self.db.expire_all()
        self.db.refresh(timesheet)
        log.warning(
            f"Timesheet {timesheet.id} permanently deleted by user {actor.id}: "
            f"{entries_removed} entries, {approvals_removed} project approvals removed"
        )
        return OperationOutcome(
            timesheet,
            timesheet.id,
            side_effects={"entries_removed": entries_removed, "project_approvals_removed": approvals_removed},
        )
