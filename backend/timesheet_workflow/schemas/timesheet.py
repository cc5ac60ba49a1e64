from typing import Optional, List, Dict, Literal
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict

from timesheet_workflow.schemas.entry import TimeEntryInDB
from timesheet_workflow.schemas.project_approval import ProjectApprovalInDB


class TimesheetCreate(BaseModel):
    week_start_date: date = Field(..., description="Any day of the week, normalized to its Monday")
    user_id: Optional[int] = Field(None, description="Owner, defaults to the caller")


class DecisionRequest(BaseModel):
    action: Literal["approve", "reject"] = Field(..., description="Decision to record")
    reason: Optional[str] = Field(None, description="Required when rejecting")


class BilledRequest(BaseModel):
    billing_snapshot_id: Optional[int] = Field(None, description="Billing snapshot the hours were invoiced under")


class TimesheetInDB(BaseModel):
    id: int
    user_id: int
    week_start_date: date
    week_end_date: date
    total_hours: Decimal
    status: str
    submitted_at: Optional[datetime] = None

    approved_by_manager_id: Optional[int] = None
    manager_approved_at: Optional[datetime] = None
    manager_rejection_reason: Optional[str] = None
    manager_rejected_at: Optional[datetime] = None

    approved_by_management_id: Optional[int] = None
    management_approved_at: Optional[datetime] = None
    management_rejection_reason: Optional[str] = None
    management_rejected_at: Optional[datetime] = None

    verified_by_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    is_verified: bool = False
    is_frozen: bool = False
    billed_at: Optional[datetime] = None
    billing_snapshot_id: Optional[int] = None

    deleted_at: Optional[datetime] = Field(None, description="Set when soft-deleted")
    deleted_by: Optional[int] = None
    deleted_reason: Optional[str] = None
    is_hard_deleted: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TimesheetDetails(BaseModel):
    """Timesheet with its entries and what the caller may do next."""
    timesheet: TimesheetInDB
    entries: List[TimeEntryInDB]
    project_approvals: List[ProjectApprovalInDB]
    billable_hours: Decimal = Field(..., description="Hours on billable entries")
    non_billable_hours: Decimal = Field(..., description="Hours on non-billable entries")
    can_edit: bool
    can_submit: bool
    can_approve: bool
    can_reject: bool
    next_action: Optional[str] = Field(None, description="Suggested next step for the caller")


class TimesheetDashboard(BaseModel):
    status_counts: Dict[str, int] = Field(default_factory=dict, description="Caller's own timesheets by status")
    current_week: Optional[TimesheetInDB] = Field(None, description="Caller's timesheet for the current week")
    pending_approvals: int = Field(0, description="Timesheets waiting for the caller's decision")
    total_hours_this_month: Decimal = Field(Decimal("0"), description="Hours on the caller's timesheets starting this month")
