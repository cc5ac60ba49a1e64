"""Time entry model: hours logged against a project task or a custom task."""

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, Boolean, Text, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from timesheet_workflow.database import Base


class TimeEntry(Base):
    """A single line on a timesheet."""

    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id"), nullable=False, index=True)

    # What the time was spent on
    entry_type = Column(String(20), nullable=False, default="project_task")  # 'project_task' or 'custom_task'
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)
    custom_task_description = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    # Time tracking
    date = Column(Date, nullable=False, index=True)
    hours = Column(Numeric(5, 2), nullable=False)
    is_billable = Column(Boolean, default=True, nullable=False)

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    timesheet = relationship("Timesheet", back_populates="entries")
    project = relationship("Project")
    task = relationship("Task")

    __table_args__ = (
        Index('idx_time_entries_timesheet_date', 'timesheet_id', 'date'),
    )

    def __repr__(self):
        return f"<TimeEntry(id={self.id}, timesheet={self.timesheet_id}, date='{self.date}', hours={self.hours})>"
