from typing import List, Annotated, Optional
from fastapi import APIRouter, Depends, status, Query

from timesheet_workflow.auth import get_current_actor
from timesheet_workflow.constants.statuses import TimesheetStatus
from timesheet_workflow.dependencies import get_lifecycle, get_queries
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.schemas.timesheet import (
    BilledRequest,
    DecisionRequest,
    TimesheetCreate,
    TimesheetDashboard,
    TimesheetDetails,
    TimesheetInDB,
)
from timesheet_workflow.services.lifecycle import TimesheetLifecycle
from timesheet_workflow.services.timesheet_queries import TimesheetQueries

router = APIRouter()

@router.post("/", response_model=TimesheetInDB, status_code=status.HTTP_201_CREATED)
def create_timesheet(
    payload: TimesheetCreate,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    """Create a draft timesheet for the caller or, for managers, a direct report."""
    return lifecycle.create(current_actor, payload.week_start_date, user_id=payload.user_id).result

@router.get("/", response_model=List[TimesheetInDB])
def read_timesheets(
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    user_id: Optional[int] = Query(None, description="Owner, defaults to the caller"),
    status_filter: Optional[TimesheetStatus] = Query(None, alias="status", description="Filter by status"),
    skip: int = 0,
    limit: int = 100,
    queries: TimesheetQueries = Depends(get_queries),
):
    """List timesheets, newest week first."""
    return queries.list_timesheets(current_actor, user_id=user_id, status=status_filter, skip=skip, limit=limit)

@router.get("/approvals", response_model=List[TimesheetInDB])
def read_approval_queue(
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    queries: TimesheetQueries = Depends(get_queries),
):
    """Timesheets waiting for the caller's decision."""
    return queries.approval_queue(current_actor)

@router.get("/dashboard", response_model=TimesheetDashboard)
def read_dashboard(
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    queries: TimesheetQueries = Depends(get_queries),
):
    return queries.dashboard(current_actor)

@router.get("/deleted", response_model=List[TimesheetInDB])
def read_deleted_timesheets(
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    skip: int = 0,
    limit: int = 100,
    queries: TimesheetQueries = Depends(get_queries),
):
    """Soft-deleted timesheets that can still be restored."""
    return queries.list_deleted(current_actor, skip=skip, limit=limit)

@router.get("/{timesheet_id}", response_model=TimesheetDetails)
def read_timesheet(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    queries: TimesheetQueries = Depends(get_queries),
):
    """Timesheet with entries, project approvals and the caller's options."""
    return queries.get_details(current_actor, timesheet_id)

@router.post("/{timesheet_id}/submit", response_model=TimesheetInDB)
def submit_timesheet(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    return lifecycle.submit(current_actor, timesheet_id).result

@router.post("/{timesheet_id}/manager-decision", response_model=TimesheetInDB)
def manager_decision(
    timesheet_id: int,
    decision: DecisionRequest,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    return lifecycle.manager_decision(
        current_actor, timesheet_id, decision.action == "approve", reason=decision.reason
    ).result

@router.post("/{timesheet_id}/management-decision", response_model=TimesheetInDB)
def management_decision(
    timesheet_id: int,
    decision: DecisionRequest,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    return lifecycle.management_decision(
        current_actor, timesheet_id, decision.action == "approve", reason=decision.reason
    ).result

@router.post("/{timesheet_id}/billed", response_model=TimesheetInDB)
def mark_billed(
    timesheet_id: int,
    payload: BilledRequest,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    """Billing hand-off for frozen timesheets."""
    return lifecycle.mark_billed(current_actor, timesheet_id, billing_snapshot_id=payload.billing_snapshot_id).result

@router.delete("/{timesheet_id}", response_model=TimesheetInDB)
def delete_timesheet(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    reason: Optional[str] = Query(None, description="Why the timesheet is being deleted"),
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    """Soft delete; the timesheet can be restored later."""
    return lifecycle.soft_delete(current_actor, timesheet_id, reason=reason).result

@router.post("/{timesheet_id}/restore", response_model=TimesheetInDB)
def restore_timesheet(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    return lifecycle.restore(current_actor, timesheet_id).result

@router.delete("/{timesheet_id}/permanent", response_model=TimesheetInDB)
def hard_delete_timesheet(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    lifecycle: TimesheetLifecycle = Depends(get_lifecycle),
):
    """Irreversibly remove a soft-deleted timesheet's entries and approvals."""
    return lifecycle.hard_delete(current_actor, timesheet_id).result
