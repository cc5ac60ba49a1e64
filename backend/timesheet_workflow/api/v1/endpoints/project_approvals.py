from typing import List, Annotated
from fastapi import APIRouter, Depends

from timesheet_workflow.auth import get_current_actor
from timesheet_workflow.dependencies import get_fanout, get_queries
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.schemas.project_approval import ProjectApprovalDecision, ProjectApprovalInDB
from timesheet_workflow.services.project_approval import ProjectApprovalFanout
from timesheet_workflow.services.timesheet_queries import TimesheetQueries

router = APIRouter()

@router.get("/{timesheet_id}/project-approvals", response_model=List[ProjectApprovalInDB])
def read_project_approvals(
    timesheet_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    queries: TimesheetQueries = Depends(get_queries),
    fanout: ProjectApprovalFanout = Depends(get_fanout),
):
    """Per-project review slices of a submitted timesheet."""
    queries.get_timesheet(current_actor, timesheet_id)
    return fanout.list_approvals(timesheet_id)

@router.post("/{timesheet_id}/project-approvals/{project_id}/decision", response_model=ProjectApprovalInDB)
def decide_project_approval(
    timesheet_id: int,
    project_id: int,
    decision: ProjectApprovalDecision,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    fanout: ProjectApprovalFanout = Depends(get_fanout),
):
    """Lead or manager decision on one project's slice of the timesheet."""
    return fanout.decide(current_actor, timesheet_id, project_id, decision.action == "approve", reason=decision.reason)
