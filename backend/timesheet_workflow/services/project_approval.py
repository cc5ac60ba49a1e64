"""
Project approval fan-out.

A submitted timesheet is split into one review slice per project it has
hours on. Each slice tracks the project lead's and the project manager's
decision independently of the timesheet's own status.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from timesheet_workflow.constants.statuses import (
    ApprovalStatus,
    ProjectRole,
    Role,
    TimesheetStatus,
)
from timesheet_workflow.constants.violation_reasons import ReasonCode, explain_reason
from timesheet_workflow.exceptions import (
    AuthorizationError,
    NotFoundError,
    TimesheetError,
    ValidationError,
)
from timesheet_workflow.models.project import Project, ProjectMember
from timesheet_workflow.models.project_approval import TimesheetProjectApproval
from timesheet_workflow.models.time_entry import TimeEntry
from timesheet_workflow.models.timesheet import Timesheet
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.services.audit import AuditRecorder, snapshot

log = logging.getLogger(__name__)

SLICE_REVIEW_STATUSES = (TimesheetStatus.SUBMITTED.value, TimesheetStatus.MANAGEMENT_PENDING.value)


class ProjectApprovalFanout:
    """Creates, refreshes and decides per-project approval slices."""

    def __init__(self, db: Session, audit: AuditRecorder):
        self.db = db
        self.audit = audit

    def _project_slices(self, timesheet_id: int) -> Dict[int, Dict]:
        rows = (
            self.db.query(
                TimeEntry.project_id,
                func.count(TimeEntry.id),
                func.coalesce(func.sum(TimeEntry.hours), 0),
            )
            .filter(
                TimeEntry.timesheet_id == timesheet_id,
                TimeEntry.deleted_at.is_(None),
                TimeEntry.project_id.isnot(None),
            )
            .group_by(TimeEntry.project_id)
            .all()
        )
        return {
            project_id: {"entries_count": count, "total_hours": Decimal(str(hours))}
            for project_id, count, hours in rows
        }

    def _active_lead(self, project_id: int) -> Optional[ProjectMember]:
        return (
            self.db.query(ProjectMember)
            .filter(
                ProjectMember.project_id == project_id,
                ProjectMember.project_role == ProjectRole.LEAD.value,
                ProjectMember.removed_at.is_(None),
                ProjectMember.deleted_at.is_(None),
            )
            .order_by(ProjectMember.id)
            .first()
        )

    def _is_active_member(self, project_id: int, user_id: int) -> bool:
        return (
            self.db.query(ProjectMember.id)
            .filter(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
                ProjectMember.removed_at.is_(None),
                ProjectMember.deleted_at.is_(None),
            )
            .first()
            is not None
        )

    def ensure_approvals(self, timesheet: Timesheet, reset_decisions: bool = False) -> Dict[str, List[int]]:
        """
        Make sure every project on the timesheet has exactly one approval slice.

        Missing slices are created. Existing slices get fresh totals and
        membership flags; with reset_decisions (a new submission) their
        decisions go back to pending, and slices for projects no longer on
        the timesheet are kept with zeroed totals and both tiers set to
        not_required. Slices are never deleted here. Calling this repeatedly
        never creates duplicates.

        Returns:
            Project IDs grouped under 'created', 'refreshed' and 'emptied'
        """
        slices = self._project_slices(timesheet.id)
        existing = {
            approval.project_id: approval
            for approval in self.db.query(TimesheetProjectApproval)
            .filter(TimesheetProjectApproval.timesheet_id == timesheet.id)
            .all()
        }
        result = {"created": [], "refreshed": [], "emptied": []}

        for project_id, totals in slices.items():
            project = self.db.get(Project, project_id)
            lead = self._active_lead(project_id)
            lead_id = lead.user_id if lead else None
            manager_id = project.primary_manager_id if project else None
            not_member = not self._is_active_member(project_id, timesheet.user_id)
            if not_member:
                log.warning(f"User {timesheet.user_id} is no longer an active member of project {project_id}")

            approval = existing.get(project_id)
            if approval is None:
                approval = TimesheetProjectApproval(
                    timesheet_id=timesheet.id,
                    project_id=project_id,
                    lead_id=lead_id,
                    lead_status=(ApprovalStatus.PENDING if lead_id else ApprovalStatus.NOT_REQUIRED).value,
                    manager_id=manager_id,
                    manager_status=ApprovalStatus.PENDING.value,
                    entries_count=totals["entries_count"],
                    total_hours=totals["total_hours"],
                    user_not_in_project=not_member,
                )
                self.db.add(approval)
                result["created"].append(project_id)
                continue

            approval.entries_count = totals["entries_count"]
            approval.total_hours = totals["total_hours"]
            approval.user_not_in_project = not_member
            if reset_decisions:
                approval.lead_id = lead_id
                approval.manager_id = manager_id
                approval.lead_status = (ApprovalStatus.PENDING if lead_id else ApprovalStatus.NOT_REQUIRED).value
                approval.lead_approved_at = None
                approval.lead_rejection_reason = None
                approval.manager_status = ApprovalStatus.PENDING.value
                approval.manager_approved_at = None
                approval.manager_rejection_reason = None
            result["refreshed"].append(project_id)

        if reset_decisions:
            for project_id, approval in existing.items():
                if project_id not in slices:
                    approval.entries_count = 0
                    approval.total_hours = Decimal("0")
                    approval.lead_status = ApprovalStatus.NOT_REQUIRED.value
                    approval.lead_approved_at = None
                    approval.lead_rejection_reason = None
                    approval.manager_status = ApprovalStatus.NOT_REQUIRED.value
                    approval.manager_approved_at = None
                    approval.manager_rejection_reason = None
                    result["emptied"].append(project_id)

        self.db.commit()
        log.info(
            f"Project approvals for timesheet {timesheet.id}: "
            f"created={result['created']} refreshed={result['refreshed']} emptied={result['emptied']}"
        )
        return result

    def list_approvals(self, timesheet_id: int) -> List[TimesheetProjectApproval]:
        return (
            self.db.query(TimesheetProjectApproval)
            .filter(TimesheetProjectApproval.timesheet_id == timesheet_id)
            .order_by(TimesheetProjectApproval.project_id)
            .all()
        )

    def decide(
        self,
        actor: Actor,
        timesheet_id: int,
        project_id: int,
        approve: bool,
        reason: Optional[str] = None,
    ) -> TimesheetProjectApproval:
        """
        Record a lead or manager decision on one project slice.

        The tier follows from who the actor is on the slice: its lead decides
        the lead tier, its manager (or a super admin) the manager tier. The
        timesheet status is not touched.
        """
        timesheet = self.db.get(Timesheet, timesheet_id)
        if timesheet is None or timesheet.deleted_at is not None:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Timesheet"}), ReasonCode.NOT_FOUND)
        approval = (
            self.db.query(TimesheetProjectApproval)
            .filter(
                TimesheetProjectApproval.timesheet_id == timesheet_id,
                TimesheetProjectApproval.project_id == project_id,
            )
            .first()
        )
        if approval is None:
            raise NotFoundError(explain_reason(ReasonCode.NOT_FOUND, {"entity": "Project approval"}), ReasonCode.NOT_FOUND)

        if timesheet.user_id == actor.id:
            raise AuthorizationError(explain_reason(ReasonCode.SELF_APPROVAL, {}), ReasonCode.SELF_APPROVAL)

        if approval.manager_id == actor.id or actor.role == Role.SUPER_ADMIN:
            tier = "manager"
        elif approval.lead_id == actor.id:
            tier = "lead"
        else:
            raise AuthorizationError(
                explain_reason(ReasonCode.PERMISSION_DENIED, {"action": "review this project's hours"}),
                ReasonCode.PERMISSION_DENIED,
            )

        if timesheet.status not in SLICE_REVIEW_STATUSES:
            raise TimesheetError(
                explain_reason(ReasonCode.INVALID_STATUS, {"verb": "reviewed", "status": timesheet.status}),
                ReasonCode.INVALID_STATUS,
            )
        if not approve and not (reason or "").strip():
            raise ValidationError(explain_reason(ReasonCode.REASON_REQUIRED, {}), ReasonCode.REASON_REQUIRED)

        status_column = getattr(TimesheetProjectApproval, f"{tier}_status")
        now = datetime.now(timezone.utc)
        values = {
            f"{tier}_status": (ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED).value,
            f"{tier}_approved_at": now if approve else None,
            f"{tier}_rejection_reason": None if approve else reason.strip(),
        }
        before = snapshot(approval)
        updated = (
            self.db.query(TimesheetProjectApproval)
            .filter(
                TimesheetProjectApproval.id == approval.id,
                status_column == ApprovalStatus.PENDING.value,
            )
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(approval)
        if updated == 0:
            raise TimesheetError(
                f"Project approval is not pending at {tier} level (current: {getattr(approval, f'{tier}_status')})",
                ReasonCode.INVALID_STATUS,
            )

        action = f"project_{tier}_{'approve' if approve else 'reject'}"
        log.info(f"{action}: timesheet {timesheet_id} project {project_id} by user {actor.id}")
        self.audit.record(
            "project_approval",
            approval.id,
            action,
            actor_id=actor.id,
            actor_name=actor.display_name,
            context={"timesheet_id": timesheet_id, "project_id": project_id, "reason": reason},
            before=before,
            after=snapshot(approval),
        )
        return approval
