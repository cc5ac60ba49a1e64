"""Per-project slice of a timesheet submission awaiting lead/manager review."""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, Text, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from timesheet_workflow.database import Base


class TimesheetProjectApproval(Base):
    __tablename__ = "timesheet_project_approvals"

    id = Column(Integer, primary_key=True, index=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)

    # Lead tier ('not_required' when the project has no lead)
    lead_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    lead_status = Column(String(20), nullable=False, default="pending")
    lead_approved_at = Column(DateTime(timezone=True), nullable=True)
    lead_rejection_reason = Column(Text, nullable=True)

    # Manager tier
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    manager_status = Column(String(20), nullable=False, default="pending")
    manager_approved_at = Column(DateTime(timezone=True), nullable=True)
    manager_rejection_reason = Column(Text, nullable=True)

    # Slice summary at submission time
    entries_count = Column(Integer, nullable=False, default=0)
    total_hours = Column(Numeric(6, 2), nullable=False, default=0)
    user_not_in_project = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    timesheet = relationship("Timesheet", back_populates="project_approvals")
    project = relationship("Project")

    __table_args__ = (
        Index('uq_project_approvals_timesheet_project', 'timesheet_id', 'project_id', unique=True),
    )

    def __repr__(self):
        return (
            f"<TimesheetProjectApproval(timesheet={self.timesheet_id}, project={self.project_id}, "
            f"lead='{self.lead_status}', manager='{self.manager_status}')>"
        )
