from fastapi import APIRouter

from timesheet_workflow.api.v1.endpoints import timesheets, entries, project_approvals, audit_logs

api_router = APIRouter()
api_router.include_router(timesheets.router, prefix="/timesheets", tags=["timesheets"])
api_router.include_router(entries.router, prefix="/timesheets", tags=["entries"])
api_router.include_router(project_approvals.router, prefix="/timesheets", tags=["project-approvals"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["audit-logs"])
