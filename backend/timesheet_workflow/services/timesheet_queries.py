"""Read-side views over timesheets: details, listings, approval queue, dashboard."""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from timesheet_workflow.constants.statuses import (
    ApprovalStatus,
    Role,
    TimesheetStatus,
    is_editable,
)
from timesheet_workflow.constants.violation_reasons import ReasonCode, explain_reason
from timesheet_workflow.exceptions import NotFoundError, ValidationError
from timesheet_workflow.models.project_approval import TimesheetProjectApproval
from timesheet_workflow.models.time_entry import TimeEntry
from timesheet_workflow.models.timesheet import Timesheet
from timesheet_workflow.models.user import User
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.services.permissions import Action, check_permission, is_allowed

log = logging.getLogger(__name__)

S = TimesheetStatus


class TimesheetQueries:
    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return self.db.query(Timesheet).filter(Timesheet.deleted_at.is_(None))

    def _manages(self, actor: Actor, timesheet: Timesheet) -> bool:
        owner = self.db.get(User, timesheet.user_id)
        return owner is not None and owner.manager_id == actor.id

    def get_timesheet(self, actor: Actor, timesheet_id: int) -> Timesheet:
        timesheet = self._live().filter(Timesheet.id == timesheet_id).first()
        if timesheet is None:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Timesheet"}), ReasonCode.NOT_FOUND)
        check_permission(
            actor,
            Action.VIEW,
            is_owner=timesheet.user_id == actor.id,
            manages_owner=self._manages(actor, timesheet),
        )
        return timesheet

    def _capabilities(self, actor: Actor, timesheet: Timesheet) -> Dict[str, Any]:
        is_owner = timesheet.user_id == actor.id
        manages_owner = self._manages(actor, timesheet)
        status = S(timesheet.status)
        editable = is_editable(status, timesheet.is_frozen)

        can_edit = editable and is_allowed(actor.role, Action.EDIT_ENTRIES, is_owner, manages_owner)
        can_submit = editable and is_owner and Decimal(str(timesheet.total_hours or 0)) > 0
        can_decide = not is_owner and (
            (status == S.SUBMITTED and is_allowed(actor.role, Action.MANAGER_DECISION))
            or (status in (S.MANAGER_APPROVED, S.MANAGEMENT_PENDING) and is_allowed(actor.role, Action.MANAGEMENT_DECISION))
        )

        if can_submit:
            next_action = "submit"
        elif can_edit:
            next_action = "add_entries"
        elif can_decide:
            next_action = "review"
        elif status == S.FROZEN:
            next_action = "awaiting_billing"
        else:
            next_action = None

        return {
            "can_edit": can_edit,
            "can_submit": can_submit,
            "can_approve": can_decide,
            "can_reject": can_decide,
            "next_action": next_action,
        }

    def get_details(self, actor: Actor, timesheet_id: int) -> Dict[str, Any]:
        timesheet = self.get_timesheet(actor, timesheet_id)
        entries = (
            self.db.query(TimeEntry)
            .filter(TimeEntry.timesheet_id == timesheet.id, TimeEntry.deleted_at.is_(None))
            .order_by(TimeEntry.date, TimeEntry.id)
            .all()
        )
        approvals = (
            self.db.query(TimesheetProjectApproval)
            .filter(TimesheetProjectApproval.timesheet_id == timesheet.id)
            .order_by(TimesheetProjectApproval.project_id)
            .all()
        )
        billable = sum((Decimal(str(e.hours)) for e in entries if e.is_billable), Decimal("0"))
        non_billable = sum((Decimal(str(e.hours)) for e in entries if not e.is_billable), Decimal("0"))
        return {
            "timesheet": timesheet,
            "entries": entries,
            "project_approvals": approvals,
            "billable_hours": billable,
            "non_billable_hours": non_billable,
            **self._capabilities(actor, timesheet),
        }

    def list_timesheets(
        self,
        actor: Actor,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Timesheet]:
        """The caller's timesheets, or another user's when the caller may view them."""
        owner_id = user_id if user_id is not None else actor.id
        if owner_id != actor.id:
            owner = self.db.get(User, owner_id)
            if owner is None:
                raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "User"}), ReasonCode.NOT_FOUND)
            check_permission(actor, Action.VIEW, manages_owner=owner.manager_id == actor.id)
        query = self._live().filter(Timesheet.user_id == owner_id)
        if status:
            try:
                status = S(status)
            except ValueError:
                raise ValidationError(
                    explain_reason(ReasonCode.INVALID_INPUT, {"field": "status", "detail": f"unknown status '{status}'"}),
                    ReasonCode.INVALID_INPUT,
                )
            query = query.filter(Timesheet.status == status.value)
        return query.order_by(Timesheet.week_start_date.desc()).offset(skip).limit(limit).all()

    def approval_queue(self, actor: Actor) -> List[Timesheet]:
        """
        Timesheets waiting for the caller's decision.

        Leads see submissions with a pending slice they lead; managers see
        submissions from their reports or with a pending slice they manage;
        management sees everything awaiting the management tier. Own
        timesheets are never listed.
        """
        level = actor.role.level
        conditions = []

        if actor.role == Role.LEAD:
            lead_slices = select(TimesheetProjectApproval.timesheet_id).where(
                TimesheetProjectApproval.lead_id == actor.id,
                TimesheetProjectApproval.lead_status == ApprovalStatus.PENDING.value,
            )
            conditions.append((Timesheet.status == S.SUBMITTED.value) & Timesheet.id.in_(lead_slices))

        if actor.role == Role.MANAGER:
            reports = select(User.id).where(User.manager_id == actor.id)
            managed_slices = select(TimesheetProjectApproval.timesheet_id).where(
                TimesheetProjectApproval.manager_id == actor.id,
                TimesheetProjectApproval.entries_count > 0,
            )
            conditions.append(
                (Timesheet.status == S.SUBMITTED.value)
                & or_(Timesheet.user_id.in_(reports), Timesheet.id.in_(managed_slices))
            )

        if level >= Role.MANAGEMENT.level:
            statuses = [S.MANAGER_APPROVED.value, S.MANAGEMENT_PENDING.value]
            if actor.role == Role.SUPER_ADMIN:
                statuses.append(S.SUBMITTED.value)
            conditions.append(Timesheet.status.in_(statuses))

        if not conditions:
            return []
        return (
            self._live()
            .filter(Timesheet.user_id != actor.id, or_(*conditions))
            .order_by(Timesheet.submitted_at, Timesheet.id)
            .all()
        )

    def dashboard(self, actor: Actor, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        counts = dict(
            self._live()
            .with_entities(Timesheet.status, func.count(Timesheet.id))
            .filter(Timesheet.user_id == actor.id)
            .group_by(Timesheet.status)
            .all()
        )
        week_start = today - timedelta(days=today.weekday())
        current_week = (
            self._live()
            .filter(Timesheet.user_id == actor.id, Timesheet.week_start_date == week_start)
            .first()
        )
        month_hours = (
            self._live()
            .with_entities(func.coalesce(func.sum(Timesheet.total_hours), 0))
            .filter(Timesheet.user_id == actor.id, Timesheet.week_start_date >= today.replace(day=1))
            .scalar()
        )
        return {
            "status_counts": counts,
            "current_week": current_week,
            "pending_approvals": len(self.approval_queue(actor)),
            "total_hours_this_month": Decimal(str(month_hours)),
        }

    def list_deleted(self, actor: Actor, skip: int = 0, limit: int = 100) -> List[Timesheet]:
        check_permission(actor, Action.VIEW_DELETED)
        return (
            self.db.query(Timesheet)
            .filter(Timesheet.deleted_at.isnot(None), Timesheet.is_hard_deleted.is_(False))
            .order_by(Timesheet.deleted_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
