"""Database models."""

from timesheet_workflow.models.user import User
from timesheet_workflow.models.project import Project, ProjectMember, Task
from timesheet_workflow.models.timesheet import Timesheet
from timesheet_workflow.models.time_entry import TimeEntry
from timesheet_workflow.models.project_approval import TimesheetProjectApproval
from timesheet_workflow.models.audit_log import AuditLog

__all__ = [
    "User",
    "Project",
    "ProjectMember",
    "Task",
    "Timesheet",
    "TimeEntry",
    "TimesheetProjectApproval",
    "AuditLog",
]
