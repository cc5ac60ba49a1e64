from typing import List, Annotated, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query

from timesheet_workflow.auth import get_current_actor
from timesheet_workflow.dependencies import get_audit_recorder
from timesheet_workflow.schemas.audit import AuditLogInDB
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.services.audit import AuditRecorder
from timesheet_workflow.services.permissions import Action, check_permission

router = APIRouter(
    tags=["audit-logs"]
)

@router.get("/", response_model=List[AuditLogInDB])
def read_audit_logs(
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    skip: int = 0,
    limit: int = 100,
    entity_type: Optional[str] = Query(None, description="Filter by entity type, e.g. 'timesheet'"),
    entity_id: Optional[int] = Query(None, description="Filter by entity ID"),
    actor_id: Optional[int] = Query(None, description="Filter by acting user"),
    action: Optional[str] = Query(None, description="Filter by specific action"),
    start_date: Optional[str] = Query(None, description="Filter created_at >= YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="Filter created_at <= YYYY-MM-DD"),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Retrieve audit logs with optional filters, newest first."""
    check_permission(current_actor, Action.VIEW_AUDIT)
    try:
        start = datetime.fromisoformat(f"{start_date}T00:00:00") if start_date else None
        end = datetime.fromisoformat(f"{end_date}T23:59:59") if end_date else None
    except ValueError:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Dates must be YYYY-MM-DD")
    return recorder.query(
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        action=action,
        start=start,
        end=end,
        skip=skip,
        limit=limit,
    )

@router.get("/{log_id}", response_model=AuditLogInDB)
def read_audit_log(
    log_id: int,
    current_actor: Annotated[Actor, Depends(get_current_actor)],
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Retrieve a single audit log by ID."""
    check_permission(current_actor, Action.VIEW_AUDIT)
    db_log = recorder.get(log_id)
    if db_log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit log not found")
    return db_log
