from typing import Optional, Literal
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict


class ProjectApprovalDecision(BaseModel):
    action: Literal["approve", "reject"] = Field(..., description="Decision on this project's hours")
    reason: Optional[str] = Field(None, description="Required when rejecting")


class ProjectApprovalInDB(BaseModel):
    id: int
    timesheet_id: int
    project_id: int

    lead_id: Optional[int] = Field(None, description="Project lead reviewing the slice, if any")
    lead_status: str = Field(..., description="'pending', 'not_required', 'approved' or 'rejected'")
    lead_approved_at: Optional[datetime] = None
    lead_rejection_reason: Optional[str] = None

    manager_id: Optional[int] = Field(None, description="Project manager reviewing the slice")
    manager_status: str
    manager_approved_at: Optional[datetime] = None
    manager_rejection_reason: Optional[str] = None

    entries_count: int
    total_hours: Decimal
    user_not_in_project: bool = Field(False, description="Owner is no longer an active project member")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
