"""APScheduler integration for the project approval repair job.

Submission fans out one approval slice per project. A request that dies
halfway can leave a submitted timesheet with missing slices; this job
re-runs the idempotent fan-out for everything awaiting review.
"""

import logging
from typing import Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from timesheet_workflow.config import settings
from timesheet_workflow.constants.statuses import TimesheetStatus
from timesheet_workflow.database import SessionLocal
from timesheet_workflow.models.timesheet import Timesheet
from timesheet_workflow.services.audit import AuditRecorder
from timesheet_workflow.services.project_approval import ProjectApprovalFanout

log = logging.getLogger(__name__)

JOB_ID = "approval_repair_job"

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone=settings.timezone)

REPAIRABLE_STATUSES = (
    TimesheetStatus.SUBMITTED.value,
    TimesheetStatus.MANAGEMENT_PENDING.value,
)


def repair_project_approvals(db: Session) -> Dict[str, int]:
    """Create missing approval slices for timesheets awaiting review."""
    fanout = ProjectApprovalFanout(db, AuditRecorder(db))
    timesheets = (
        db.query(Timesheet)
        .filter(
            Timesheet.status.in_(REPAIRABLE_STATUSES),
            Timesheet.deleted_at.is_(None),
        )
        .all()
    )
    stats = {"checked": 0, "repaired": 0, "created": 0}
    for timesheet in timesheets:
        stats["checked"] += 1
        result = fanout.ensure_approvals(timesheet)
        if result["created"]:
            stats["repaired"] += 1
            stats["created"] += len(result["created"])
            log.warning(f"Repaired timesheet {timesheet.id}: created approvals for projects {result['created']}")
    return stats


async def scheduled_repair_job():
    """Run the repair against a fresh session."""
    db = SessionLocal()
    try:
        stats = repair_project_approvals(db)
        log.info(f"Approval repair completed: {stats}")
    except Exception as e:
        log.error(f"Approval repair failed: {e}", exc_info=True)
    finally:
        db.close()


def start_scheduler():
    """Register the repair job and start the scheduler."""
    if not settings.approval_repair_enabled:
        log.info("Approval repair job disabled")
        return

    scheduler.add_job(
        scheduled_repair_job,
        IntervalTrigger(minutes=settings.approval_repair_interval_minutes),
        id=JOB_ID,
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()
        log.info(f"APScheduler started: approval repair every {settings.approval_repair_interval_minutes} minutes")


def shutdown_scheduler():
    """Shutdown the APScheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        log.info("APScheduler shut down successfully")
