"""
Request-scoped service construction.

Every request gets its own session and its own service instances wired
together here; nothing is shared between requests except the notification
dispatcher, which owns a background thread pool.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from timesheet_workflow.config import settings
from timesheet_workflow.database import get_db
from timesheet_workflow.services.audit import AuditRecorder
from timesheet_workflow.services.entry_manager import EntryManager
from timesheet_workflow.services.lifecycle import TimesheetLifecycle
from timesheet_workflow.services.notifications import NotificationDispatcher, build_dispatcher
from timesheet_workflow.services.project_approval import ProjectApprovalFanout
from timesheet_workflow.services.timesheet_queries import TimesheetQueries


@lru_cache
def get_notifier() -> NotificationDispatcher:
    return build_dispatcher(settings)


def get_audit_recorder(db: Session = Depends(get_db)) -> AuditRecorder:
    return AuditRecorder(db)


def get_fanout(
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> ProjectApprovalFanout:
    return ProjectApprovalFanout(db, audit)


def get_lifecycle(
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    fanout: ProjectApprovalFanout = Depends(get_fanout),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> TimesheetLifecycle:
    return TimesheetLifecycle(db, audit, fanout, notifier)


def get_entry_manager(
    db: Session = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> EntryManager:
    return EntryManager(db, audit)


def get_queries(db: Session = Depends(get_db)) -> TimesheetQueries:
    return TimesheetQueries(db)
